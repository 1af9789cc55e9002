"""Input schemas for workflow definitions and approver actions."""

from typing import Any, List, Mapping, Optional, Sequence, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from formflow.core.errors import ValidationError

from .states import StagePolicy


class StageDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    order: int
    name: Optional[str] = Field(default=None, max_length=200)
    policy: StagePolicy
    approver_ids: List[UUID] = Field(min_length=1)


class ActionPayload(BaseModel):
    """Body of an approve, decline or reject request."""
    model_config = ConfigDict(frozen=True)

    comments: Optional[str] = Field(default=None, max_length=1000)
    reason: Optional[str] = Field(default=None, min_length=1, max_length=500)


def _raise_validation(exc: PydanticValidationError, message: str) -> None:
    details = [
        {"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]}
        for err in exc.errors()
    ]
    raise ValidationError(message, details=details) from exc


def parse_stages(
    stages: Sequence[Union[StageDefinition, Mapping[str, Any]]],
) -> List[StageDefinition]:
    """Coerce raw stage mappings into StageDefinition objects."""
    parsed = []
    for index, stage in enumerate(stages):
        if isinstance(stage, StageDefinition):
            parsed.append(stage)
            continue
        try:
            parsed.append(StageDefinition.model_validate(stage))
        except PydanticValidationError as e:
            _raise_validation(e, f"Invalid stage definition at position {index}")
    return parsed


def parse_payload(
    payload: Union[ActionPayload, Mapping[str, Any], None],
) -> ActionPayload:
    if payload is None:
        return ActionPayload()
    if isinstance(payload, ActionPayload):
        return payload
    try:
        return ActionPayload.model_validate(payload)
    except PydanticValidationError as e:
        _raise_validation(e, "Invalid action payload")

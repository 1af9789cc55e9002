"""Interfaces of the collaborators the engine consumes.

Default implementations live in ``formflow.services``.
"""

from typing import Any, Dict, Iterable, Optional, Protocol, Set
from uuid import UUID

from sqlalchemy.orm import Session

from .states import SubmissionStatus


class ApproverDirectory(Protocol):
    """Resolves approver ids at workflow definition time."""

    def resolve_active_users(self, db: Session, ids: Iterable[UUID]) -> Set[UUID]:
        """Return the subset of ``ids`` that exist and are active."""
        ...


class NotificationDispatcher(Protocol):
    """Best-effort delivery of approval notifications. Must not raise."""

    def notify_approvers(self, instance_id: UUID, stage_id: UUID) -> None:
        ...

    def notify_submitter(self, submission_id: UUID, outcome: SubmissionStatus) -> None:
        ...


class AuditSink(Protocol):
    """Append-only audit trail. Must not raise."""

    def append(
        self,
        action: str,
        entity_type: str,
        actor_id: Optional[UUID],
        entity_id: Optional[UUID],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        ...


class SubmissionOutcomeSink(Protocol):
    """Receives submission status changes inside the engine's transaction."""

    def record(self, db: Session, submission_id: UUID, status: SubmissionStatus) -> None:
        ...

"""Workflow definition store.

Creates, reads and replaces workflow definitions. Stage sets are always
replaced as a whole; there is no merge of old and new stages.
"""

import logging
from typing import Any, Iterable, Mapping, Optional, Sequence, Union
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from formflow.core.errors import ConflictError, NotFoundError, ValidationError
from formflow.db.models import AuditAction, Workflow, WorkflowInstance, WorkflowStage

from .collaborators import ApproverDirectory, AuditSink
from .effects import SideEffects
from .schemas import StageDefinition, parse_stages
from .states import InstanceStatus, WorkflowType

logger = logging.getLogger(__name__)

StageInput = Union[StageDefinition, Mapping[str, Any]]


def coerce_workflow_type(value: Union[WorkflowType, str]) -> WorkflowType:
    try:
        return WorkflowType(value)
    except ValueError:
        raise ValidationError(f"Unknown workflow type: {value}")


class WorkflowDefinitionService:
    """
    Manages workflow definitions.

    Handles:
    - One workflow per form (ConflictError on a second)
    - Approver resolution against the directory at definition time
    - Full replacement of the stage set on update
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        directory: ApproverDirectory,
        audit: AuditSink,
        *,
        block_edits_in_flight: bool = False,
    ):
        """
        Initialize the definition store.

        Args:
            session_factory: Factory for database sessions
            directory: Resolves approver ids to active accounts
            audit: Receives WORKFLOW_CREATED / WORKFLOW_UPDATED entries
            block_edits_in_flight: Refuse stage replacement while any
                instance of the workflow is in progress
        """
        self._session_factory = session_factory
        self._directory = directory
        self._audit = audit
        self._block_edits_in_flight = block_edits_in_flight

    def create_workflow(
        self,
        form_id: UUID,
        type: Union[WorkflowType, str],
        stages: Sequence[StageInput],
        *,
        actor_id: Optional[UUID] = None,
    ) -> Workflow:
        """
        Create the workflow for a form.

        Raises:
            ConflictError: If the form already has a workflow
            ValidationError: If a stage is malformed or names an approver
                that is missing or inactive
        """
        workflow_type = coerce_workflow_type(type)
        definitions = parse_stages(stages)
        if not definitions:
            raise ValidationError("At least one stage is required")

        effects = SideEffects()
        with self._session_factory.begin() as db:
            existing = db.query(Workflow).filter(Workflow.form_id == form_id).first()
            if existing:
                raise ConflictError("Workflow already exists for this form")

            self._validate_approvers(db, definitions)

            workflow = Workflow(
                form_id=form_id,
                type=workflow_type,
                stages=self._build_stages(definitions),
            )
            db.add(workflow)
            try:
                db.flush()
            except IntegrityError as e:
                # Lost a race with a concurrent create for the same form
                raise ConflictError("Workflow already exists for this form") from e

            effects.add(
                "audit workflow created",
                self._audit.append,
                AuditAction.WORKFLOW_CREATED.value, "Workflow", actor_id, workflow.id,
            )

        logger.info(f"Created workflow {workflow.id} for form {form_id} with {len(definitions)} stage(s)")
        effects.run()
        return workflow

    def get_workflow(self, workflow_id: UUID) -> Workflow:
        """Get a workflow with its stages sorted by order."""
        with self._session_factory() as db:
            workflow = db.get(Workflow, workflow_id)
            if not workflow:
                raise NotFoundError("Workflow")
            return workflow

    def get_workflow_for_form(self, form_id: UUID) -> Optional[Workflow]:
        with self._session_factory() as db:
            return db.query(Workflow).filter(Workflow.form_id == form_id).first()

    def update_workflow(
        self,
        workflow_id: UUID,
        *,
        type: Optional[Union[WorkflowType, str]] = None,
        stages: Optional[Sequence[StageInput]] = None,
        actor_id: Optional[UUID] = None,
    ) -> Workflow:
        """
        Update a workflow's type and/or replace its stage set.

        Replacing stages deletes every existing stage. Instances still
        pointing at a deleted stage lose their current stage reference.

        Raises:
            NotFoundError: If the workflow does not exist
            ValidationError: If a new stage is malformed or names an
                approver that is missing or inactive
            ConflictError: If edits are blocked and an instance is in progress
        """
        workflow_type = coerce_workflow_type(type) if type is not None else None
        definitions = parse_stages(stages) if stages is not None else None

        effects = SideEffects()
        with self._session_factory.begin() as db:
            workflow = db.get(Workflow, workflow_id, with_for_update=True)
            if not workflow:
                raise NotFoundError("Workflow")

            if definitions is not None:
                self._validate_approvers(db, definitions)

                if self._block_edits_in_flight:
                    in_flight = self._count_in_flight(db, workflow.id)
                    if in_flight:
                        raise ConflictError(
                            "Workflow has instances in progress",
                            details={"in_progress": in_flight},
                        )

                workflow.stages.clear()
                db.flush()
                workflow.stages.extend(self._build_stages(definitions))

            if workflow_type is not None:
                workflow.type = workflow_type

            db.flush()

            effects.add(
                "audit workflow updated",
                self._audit.append,
                AuditAction.WORKFLOW_UPDATED.value, "Workflow", actor_id, workflow.id,
            )

        effects.run()
        return workflow

    def _validate_approvers(self, db: Session, definitions: Iterable[StageDefinition]) -> None:
        for definition in definitions:
            requested = list(definition.approver_ids)
            resolved = self._directory.resolve_active_users(db, requested)

            # Duplicate ids resolve once, so they fail the length check too
            if len(resolved) != len(requested):
                unresolved = sorted(str(a) for a in set(requested) - set(resolved))
                raise ValidationError(
                    "One or more approvers not found or inactive",
                    details={"stage_order": definition.order, "unresolved": unresolved},
                )

    @staticmethod
    def _build_stages(definitions: Iterable[StageDefinition]) -> list[WorkflowStage]:
        # Stable sort: stages sharing an order value keep the caller's sequence
        return [
            WorkflowStage(
                order=d.order,
                name=d.name,
                policy=d.policy,
                approver_ids=[str(a) for a in d.approver_ids],
            )
            for d in sorted(definitions, key=lambda d: d.order)
        ]

    @staticmethod
    def _count_in_flight(db: Session, workflow_id: UUID) -> int:
        return db.query(func.count(WorkflowInstance.id)).filter(
            WorkflowInstance.workflow_id == workflow_id,
            WorkflowInstance.status == InstanceStatus.IN_PROGRESS,
        ).scalar()

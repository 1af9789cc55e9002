"""Workflow instance lifecycle.

Starts, advances, restarts and terminates the per-submission instance of a
workflow, and fans out one approval per approver whenever a stage becomes
active.
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from formflow.core.errors import ConflictError, NotFoundError, ValidationError
from formflow.db.base import utcnow
from formflow.db.models import (
    Approval,
    AuditAction,
    Workflow,
    WorkflowInstance,
    WorkflowStage,
)

from .collaborators import AuditSink, NotificationDispatcher, SubmissionOutcomeSink
from .effects import SideEffects
from .locks import InstanceLockRegistry
from .states import ApprovalStatus, InstanceStatus, SubmissionStatus

logger = logging.getLogger(__name__)


def first_stage(workflow: Workflow) -> WorkflowStage:
    if not workflow.stages:
        raise ValidationError("Workflow has no stages")
    return workflow.stages[0]


class InstanceLifecycleManager:
    """
    Owns workflow instances and their approval fan-out.

    Every mutation of an instance runs under the instance's lock and inside
    one transaction; notifications and audit entries follow the commit.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        notifier: NotificationDispatcher,
        audit: AuditSink,
        outcomes: SubmissionOutcomeSink,
        locks: Optional[InstanceLockRegistry] = None,
    ):
        self._session_factory = session_factory
        self._notifier = notifier
        self._audit = audit
        self._outcomes = outcomes
        self.locks = locks or InstanceLockRegistry()

    def start_workflow(
        self,
        workflow_id: UUID,
        submission_id: UUID,
        *,
        actor_id: Optional[UUID] = None,
    ) -> WorkflowInstance:
        """
        Start a workflow for a submission at its first stage.

        Raises:
            NotFoundError: If the workflow does not exist
            ValidationError: If the workflow has no stages
            ConflictError: If the submission already has an instance
        """
        effects = SideEffects()
        with self._session_factory.begin() as db:
            workflow = db.get(Workflow, workflow_id)
            if not workflow:
                raise NotFoundError("Workflow")

            stage = first_stage(workflow)

            existing = db.query(WorkflowInstance).filter(
                WorkflowInstance.submission_id == submission_id
            ).first()
            if existing:
                raise ConflictError("Workflow already started for this submission")

            instance = WorkflowInstance(
                workflow=workflow,
                submission_id=submission_id,
                current_stage_id=stage.id,
                status=InstanceStatus.IN_PROGRESS,
                started_at=utcnow(),
            )
            db.add(instance)
            self._fan_out(instance, stage)
            try:
                db.flush()
            except IntegrityError as e:
                raise ConflictError("Workflow already started for this submission") from e

            effects.add(
                "audit workflow started",
                self._audit.append,
                AuditAction.WORKFLOW_STARTED.value, "WorkflowInstance", actor_id, instance.id,
                {"submission_id": str(submission_id)},
            )
            effects.add("notify approvers", self._notifier.notify_approvers, instance.id, stage.id)

        logger.info(f"Started workflow {workflow_id} for submission {submission_id} at stage {stage.id}")
        with self.locks.hold(instance.id):
            effects.run()
        return instance

    def restart_workflow(
        self,
        instance_id: UUID,
        *,
        actor_id: Optional[UUID] = None,
    ) -> WorkflowInstance:
        """
        Reset an instance to the first stage of its workflow.

        Every approval of the instance is deleted, including those from
        earlier attempts, and a fresh first-stage batch is created.

        Raises:
            NotFoundError: If the instance does not exist
            ValidationError: If the workflow has no stages
        """
        effects = SideEffects()
        with self.locks.hold(instance_id):
            with self._session_factory.begin() as db:
                instance = self.load_for_update(db, instance_id)
                stage = first_stage(instance.workflow)

                previous = len(instance.approvals)
                instance.approvals.clear()
                # Old rows must be gone before the new batch reuses their keys
                db.flush()

                instance.current_stage_id = stage.id
                instance.status = InstanceStatus.IN_PROGRESS
                instance.completed_at = None
                self._fan_out(instance, stage)
                db.flush()

                effects.add(
                    "audit workflow restarted",
                    self._audit.append,
                    AuditAction.WORKFLOW_RESTARTED.value, "WorkflowInstance", actor_id, instance.id,
                    {"discarded_approvals": previous},
                )
                effects.add("notify approvers", self._notifier.notify_approvers, instance.id, stage.id)

            logger.info(f"Restarted instance {instance_id}; discarded {previous} approval(s)")
            effects.run()
        return instance

    def get_instance(self, instance_id: UUID) -> WorkflowInstance:
        """Get an instance with its approvals."""
        with self._session_factory() as db:
            instance = db.get(WorkflowInstance, instance_id)
            if not instance:
                raise NotFoundError("Workflow instance")
            return instance

    def get_instance_for_submission(self, submission_id: UUID) -> Optional[WorkflowInstance]:
        with self._session_factory() as db:
            return db.query(WorkflowInstance).filter(
                WorkflowInstance.submission_id == submission_id
            ).first()

    def load_for_update(self, db: Session, instance_id: UUID) -> WorkflowInstance:
        """Load an instance and lock its row for the rest of the transaction."""
        instance = db.query(WorkflowInstance).filter(
            WorkflowInstance.id == instance_id
        ).with_for_update().first()
        if not instance:
            raise NotFoundError("Workflow instance")
        return instance

    def advance_to_next_stage(
        self,
        db: Session,
        instance: WorkflowInstance,
        from_stage: WorkflowStage,
        effects: SideEffects,
    ) -> Optional[WorkflowStage]:
        """
        Move an instance past a satisfied stage.

        Activates the next stage by order, or completes the instance and
        reports the submission approved when ``from_stage`` was the last.
        A stage that is no longer current (already advanced past, or the
        instance is terminal) is ignored, so a satisfied stage advances at
        most once.

        Returns:
            The newly active stage, or None if nothing advanced or the
            instance completed
        """
        if instance.status != InstanceStatus.IN_PROGRESS or instance.current_stage_id != from_stage.id:
            logger.info(
                f"Stage {from_stage.id} is not the active stage of instance {instance.id}; not advancing"
            )
            return None

        stages = instance.workflow.stages
        index = next(i for i, s in enumerate(stages) if s.id == from_stage.id)

        if index + 1 < len(stages):
            next_stage = stages[index + 1]
            instance.current_stage_id = next_stage.id
            self._fan_out(instance, next_stage)
            effects.add("notify approvers", self._notifier.notify_approvers, instance.id, next_stage.id)
            logger.info(f"Instance {instance.id} advanced to stage {next_stage.id}")
            return next_stage

        instance.status = InstanceStatus.COMPLETED
        instance.completed_at = utcnow()
        self._outcomes.record(db, instance.submission_id, SubmissionStatus.APPROVED)
        effects.add(
            "audit submission approved",
            self._audit.append,
            AuditAction.SUBMISSION_APPROVED.value, "Submission", None, instance.submission_id,
        )
        effects.add(
            "notify submitter",
            self._notifier.notify_submitter, instance.submission_id, SubmissionStatus.APPROVED,
        )
        logger.info(f"Instance {instance.id} completed; submission {instance.submission_id} approved")
        return None

    def terminate(
        self,
        db: Session,
        instance: WorkflowInstance,
        outcome: InstanceStatus,
        at: Optional[datetime] = None,
    ) -> None:
        """End an instance early. Only an explicit reject does this."""
        if outcome != InstanceStatus.REJECTED:
            raise ValueError(f"Instances can only be terminated as REJECTED, not {outcome.value}")
        if instance.status != InstanceStatus.IN_PROGRESS:
            raise ValueError(f"Instance {instance.id} is already {instance.status.value}")

        instance.status = InstanceStatus.REJECTED
        instance.completed_at = at or utcnow()
        logger.info(f"Instance {instance.id} terminated as {outcome.value}")

    @staticmethod
    def _fan_out(instance: WorkflowInstance, stage: WorkflowStage) -> None:
        for approver_id in stage.approvers:
            instance.approvals.append(
                Approval(
                    stage_id=stage.id,
                    approver_id=approver_id,
                    status=ApprovalStatus.PENDING,
                )
            )

"""Approval processing.

Applies one approver's action to one approval and, when that satisfies the
approval's stage, advances the owning instance. The approval write and the
stage evaluation share one transaction and run under the instance lock, so
concurrent approvers on the same stage always see each other's writes.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Union
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session, sessionmaker

from formflow.core.errors import NotFoundError, ValidationError
from formflow.db.models import Approval, AuditAction, WorkflowInstance, WorkflowStage

from .collaborators import AuditSink, NotificationDispatcher, SubmissionOutcomeSink
from .effects import SideEffects
from .evaluator import is_stage_complete
from .lifecycle import InstanceLifecycleManager
from .machine import ApprovalStateMachine
from .schemas import ActionPayload, parse_payload
from .states import (
    ACTION_OUTCOMES,
    ApprovalAction,
    ApprovalStatus,
    InstanceStatus,
    SubmissionStatus,
)

logger = logging.getLogger(__name__)

PayloadInput = Union[ActionPayload, Mapping[str, Any], None]

AUDIT_LABELS = {
    ApprovalAction.APPROVE: "approved",
    ApprovalAction.DECLINE: "declined",
    ApprovalAction.REJECT: "rejected",
}

SUBMISSION_AUDIT = {
    SubmissionStatus.DECLINED: AuditAction.SUBMISSION_DECLINED,
    SubmissionStatus.REJECTED: AuditAction.SUBMISSION_REJECTED,
}


@dataclass
class ApprovalResult:
    """Outcome of a processed approval action."""

    approval: Approval
    instance: WorkflowInstance
    stage_completed: bool = False
    next_stage: Optional[WorkflowStage] = None
    submission_status: Optional[SubmissionStatus] = None


@dataclass
class ApprovalPage:
    items: List[Approval]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


class ApprovalProcessor:
    """
    Validates and applies approver actions.

    Handles:
    - Assignment and pending-status checks via the approval state machine
    - approve: stage evaluation and advancement
    - decline: submission reported DECLINED, instance left in place
    - reject: submission reported REJECTED, instance terminated

    Once an instance is COMPLETED or REJECTED, leftover approvals can still
    be acted on, but only the approval itself changes.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        lifecycle: InstanceLifecycleManager,
        outcomes: SubmissionOutcomeSink,
        audit: AuditSink,
        notifier: NotificationDispatcher,
    ):
        self._session_factory = session_factory
        self._lifecycle = lifecycle
        self._outcomes = outcomes
        self._audit = audit
        self._notifier = notifier

    def process_approval(
        self,
        approval_id: UUID,
        action: Union[ApprovalAction, str],
        actor_id: UUID,
        payload: PayloadInput = None,
    ) -> ApprovalResult:
        """
        Apply an approver's action.

        Args:
            approval_id: ID of the approval being acted on
            action: approve, decline or reject
            actor_id: ID of the acting user
            payload: Optional ``comments`` and ``reason`` (reason is
                required for decline and reject)

        Returns:
            ApprovalResult describing what changed

        Raises:
            NotFoundError: If the approval does not exist
            ValidationError: If the actor is not the assigned approver, the
                approval is no longer pending, or a required reason is missing
        """
        try:
            action = ApprovalAction(action)
        except ValueError:
            raise ValidationError(f"Unknown approval action: {action}")
        data = parse_payload(payload)

        instance_id = self._instance_id_for(approval_id)

        effects = SideEffects()
        with self._lifecycle.locks.hold(instance_id):
            with self._session_factory.begin() as db:
                instance = self._lifecycle.load_for_update(db, instance_id)
                approval = db.get(Approval, approval_id)
                if not approval:
                    # Removed by a restart that ran while we waited for the lock
                    raise NotFoundError("Approval")

                machine = ApprovalStateMachine(approval.id, approval.status, approval.approver_id)
                record = machine.transition(
                    action,
                    actor_id=actor_id,
                    reason=data.reason,
                    comments=data.comments,
                )
                now = record["timestamp"]

                result = ApprovalResult(approval=approval, instance=instance)
                approval.status = record["to_state"]
                approval.comments = data.comments

                effects.add(
                    "audit approval action",
                    self._audit.append,
                    AuditAction.APPROVAL_ACTION.value, "Approval", actor_id, approval.id,
                    {"action": AUDIT_LABELS[action]},
                )

                if action == ApprovalAction.APPROVE:
                    approval.approved_at = now
                    db.flush()
                    self._evaluate_stage(db, instance, approval, effects, result)
                elif action == ApprovalAction.DECLINE:
                    approval.declined_at = now
                    approval.declined_reason = data.reason
                    if self._can_settle(instance, approval):
                        self._settle_submission(db, instance, action, actor_id, effects, result)
                elif action == ApprovalAction.REJECT:
                    approval.rejected_at = now
                    approval.declined_reason = data.reason
                    if self._can_settle(instance, approval):
                        self._settle_submission(db, instance, action, actor_id, effects, result)
                        self._lifecycle.terminate(db, instance, InstanceStatus.REJECTED, now)
                else:
                    raise ValidationError(f"Unhandled approval action: {action.value}")

                db.flush()

            logger.info(
                f"Approval {approval_id} {AUDIT_LABELS[action]} by {actor_id}; "
                f"instance {instance_id} is {instance.status.value}"
            )
            effects.run()

        return result

    def approve(self, approval_id: UUID, actor_id: UUID, comments: Optional[str] = None) -> ApprovalResult:
        return self.process_approval(
            approval_id, ApprovalAction.APPROVE, actor_id, ActionPayload(comments=comments)
        )

    def decline(
        self, approval_id: UUID, actor_id: UUID, reason: str, comments: Optional[str] = None
    ) -> ApprovalResult:
        return self.process_approval(
            approval_id, ApprovalAction.DECLINE, actor_id, {"reason": reason, "comments": comments}
        )

    def reject(
        self, approval_id: UUID, actor_id: UUID, reason: str, comments: Optional[str] = None
    ) -> ApprovalResult:
        return self.process_approval(
            approval_id, ApprovalAction.REJECT, actor_id, {"reason": reason, "comments": comments}
        )

    def get_approval(self, approval_id: UUID) -> Approval:
        with self._session_factory() as db:
            approval = db.get(Approval, approval_id)
            if not approval:
                raise NotFoundError("Approval")
            return approval

    def list_approvals(
        self,
        approver_id: UUID,
        *,
        status: Union[ApprovalStatus, str] = ApprovalStatus.PENDING,
        page: int = 1,
        limit: int = 20,
    ) -> ApprovalPage:
        """List an approver's approvals, newest first."""
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")
        try:
            status = ApprovalStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown approval status: {status}")

        with self._session_factory() as db:
            filters = (Approval.approver_id == approver_id, Approval.status == status)
            total = db.query(func.count(Approval.id)).filter(*filters).scalar()
            items = (
                db.query(Approval)
                .filter(*filters)
                .order_by(Approval.created_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )
        return ApprovalPage(items=items, page=page, limit=limit, total=total)

    def _instance_id_for(self, approval_id: UUID) -> UUID:
        with self._session_factory() as db:
            instance_id = db.query(Approval.instance_id).filter(Approval.id == approval_id).scalar()
        if instance_id is None:
            raise NotFoundError("Approval")
        return instance_id

    def _evaluate_stage(
        self,
        db: Session,
        instance: WorkflowInstance,
        approval: Approval,
        effects: SideEffects,
        result: ApprovalResult,
    ) -> None:
        stage = next((s for s in instance.workflow.stages if s.id == approval.stage_id), None)
        if stage is None:
            logger.warning(
                f"Approval {approval.id} belongs to a stage that no longer exists; skipping evaluation"
            )
            return

        if instance.status != InstanceStatus.IN_PROGRESS or instance.current_stage_id != stage.id:
            # Late sibling of a stage that already advanced, or a finished instance
            return

        statuses = [a.status for a in instance.approvals_for_stage(stage.id)]
        if not is_stage_complete(stage.policy, stage.approver_count, statuses):
            return

        result.stage_completed = True
        result.next_stage = self._lifecycle.advance_to_next_stage(db, instance, stage, effects)
        if instance.status == InstanceStatus.COMPLETED:
            result.submission_status = SubmissionStatus.APPROVED

    def _settle_submission(
        self,
        db: Session,
        instance: WorkflowInstance,
        action: ApprovalAction,
        actor_id: UUID,
        effects: SideEffects,
        result: ApprovalResult,
    ) -> None:
        outcome = ACTION_OUTCOMES[action]
        self._outcomes.record(db, instance.submission_id, outcome)
        result.submission_status = outcome

        effects.add(
            f"audit submission {outcome.value.lower()}",
            self._audit.append,
            SUBMISSION_AUDIT[outcome].value, "Submission", actor_id, instance.submission_id,
        )
        effects.add(
            "notify submitter",
            self._notifier.notify_submitter, instance.submission_id, outcome,
        )

    @staticmethod
    def _can_settle(instance: WorkflowInstance, approval: Approval) -> bool:
        if instance.status == InstanceStatus.IN_PROGRESS:
            return True
        # Completed and rejected instances only change through a restart
        logger.info(
            f"Instance {instance.id} is {instance.status.value}; approval {approval.id} "
            f"recorded without changing the submission"
        )
        return False

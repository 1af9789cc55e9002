"""Approval state machine implementation.

Validates a single approver's action against the approval's current status
and records the resulting transition. Persistence is left to the caller.
"""

from typing import Optional, Dict, Any
from uuid import UUID

from formflow.core.errors import TransitionError, ValidationError
from formflow.db.base import utcnow

from .states import (
    ApprovalStatus,
    ApprovalAction,
    can_transition,
    get_transition_rule,
)

REASON_LABELS = {
    ApprovalAction.DECLINE: "decline",
    ApprovalAction.REJECT: "rejection",
}


class ApprovalStateMachine:
    """
    State machine for one approval.

    Checks, in order:
    - the acting user is the assigned approver
    - the action is valid from the current status (only PENDING has exits)
    - a reason is present when the action requires one
    """

    def __init__(
        self,
        approval_id: UUID,
        current_state: ApprovalStatus,
        approver_id: UUID,
    ):
        """
        Initialize the state machine.

        Args:
            approval_id: ID of the approval
            current_state: Current approval status
            approver_id: ID of the approver the approval is assigned to
        """
        self.approval_id = approval_id
        self._state = current_state
        self.approver_id = approver_id

    @property
    def state(self) -> ApprovalStatus:
        return self._state

    def transition(
        self,
        action: ApprovalAction,
        *,
        actor_id: UUID,
        reason: Optional[str] = None,
        comments: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Perform a transition.

        Args:
            action: The action to perform
            actor_id: ID of the user acting
            reason: Reason text (required for decline and reject)
            comments: Optional free-form comments

        Returns:
            The transition record, including the new status and timestamp

        Raises:
            ValidationError: If the actor is not the assigned approver or a
                required reason is missing
            TransitionError: If the approval is no longer pending
        """
        if actor_id != self.approver_id:
            raise ValidationError("You are not the assigned approver")

        if not can_transition(self._state, action):
            raise TransitionError(
                "Approval is not in pending status",
                self._state,
                action,
            )

        rule = get_transition_rule(self._state, action)
        if not rule:
            raise TransitionError(
                f"No rule found for action {action.value}",
                self._state,
                action,
            )

        if rule.requires_reason and not reason:
            raise ValidationError(f"Reason is required for {REASON_LABELS[action]}")

        record = {
            "approval_id": self.approval_id,
            "from_state": self._state,
            "to_state": rule.to_state,
            "action": action,
            "actor_id": actor_id,
            "reason": reason if rule.requires_reason else None,
            "comments": comments,
            "timestamp": utcnow(),
        }
        self._state = rule.to_state

        return record

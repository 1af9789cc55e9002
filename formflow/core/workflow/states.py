"""Workflow states, stage policies and approval transitions.

Approval state machine:

    ┌──────────┐  approve   ┌──────────┐
    │ PENDING  │───────────►│ APPROVED │
    └────┬─────┘            └──────────┘
         │ decline          ┌──────────┐
         ├─────────────────►│ DECLINED │
         │                  └──────────┘
         │ reject           ┌──────────┐
         └─────────────────►│ REJECTED │
                            └──────────┘

Instance state machine:

    IN_PROGRESS ──(last stage satisfied)──► COMPLETED
    IN_PROGRESS ──(any reject action)─────► REJECTED
    any state ────(restart)───────────────► IN_PROGRESS

All approval outcomes are one-shot. Instance outcomes are terminal until an
explicit restart.
"""

from enum import Enum
from typing import Set, Dict, Optional, NamedTuple


class WorkflowType(str, Enum):
    """Informational workflow classification. Not used in stage logic."""

    SEQUENTIAL = "SEQUENTIAL"
    PARALLEL = "PARALLEL"
    HYBRID = "HYBRID"


class StagePolicy(str, Enum):
    """Rule deciding when a stage's approvals satisfy the stage."""

    SEQUENTIAL = "SEQUENTIAL"              # every approver, order nominal only
    PARALLEL = "PARALLEL"                  # first approval wins
    ALL_MUST_APPROVE = "ALL_MUST_APPROVE"  # every approver


class InstanceStatus(str, Enum):
    """Lifecycle status of a workflow instance."""

    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"


class ApprovalStatus(str, Enum):
    """Status of a single approver's decision."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DECLINED = "DECLINED"
    REJECTED = "REJECTED"


class SubmissionStatus(str, Enum):
    """Status of the governed submission, as reported by the engine."""

    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    DECLINED = "DECLINED"
    REJECTED = "REJECTED"
    ARCHIVED = "ARCHIVED"


class ApprovalAction(str, Enum):
    """Actions an approver can take on a pending approval."""

    APPROVE = "approve"
    DECLINE = "decline"
    REJECT = "reject"


class TransitionRule(NamedTuple):
    """Defines a valid approval transition."""
    from_state: ApprovalStatus
    to_state: ApprovalStatus
    action: ApprovalAction
    requires_reason: bool = False


TRANSITION_RULES: list[TransitionRule] = [
    TransitionRule(ApprovalStatus.PENDING, ApprovalStatus.APPROVED, ApprovalAction.APPROVE),
    TransitionRule(ApprovalStatus.PENDING, ApprovalStatus.DECLINED, ApprovalAction.DECLINE,
                   requires_reason=True),
    TransitionRule(ApprovalStatus.PENDING, ApprovalStatus.REJECTED, ApprovalAction.REJECT,
                   requires_reason=True),
]

VALID_TRANSITIONS: Dict[ApprovalStatus, Set[ApprovalAction]] = {}
TRANSITION_TARGETS: Dict[tuple[ApprovalStatus, ApprovalAction], TransitionRule] = {}

for rule in TRANSITION_RULES:
    VALID_TRANSITIONS.setdefault(rule.from_state, set()).add(rule.action)
    TRANSITION_TARGETS[(rule.from_state, rule.action)] = rule


TERMINAL_APPROVAL_STATES: Set[ApprovalStatus] = {
    ApprovalStatus.APPROVED,
    ApprovalStatus.DECLINED,
    ApprovalStatus.REJECTED,
}

TERMINAL_INSTANCE_STATES: Set[InstanceStatus] = {
    InstanceStatus.COMPLETED,
    InstanceStatus.REJECTED,
}

# Submission status reported for each approver action that settles it
ACTION_OUTCOMES: Dict[ApprovalAction, Optional[SubmissionStatus]] = {
    ApprovalAction.APPROVE: None,  # decided by stage completion, not the action
    ApprovalAction.DECLINE: SubmissionStatus.DECLINED,
    ApprovalAction.REJECT: SubmissionStatus.REJECTED,
}


def can_transition(from_state: ApprovalStatus, action: ApprovalAction) -> bool:
    """Check if an action is valid from the given approval status."""
    return action in VALID_TRANSITIONS.get(from_state, set())


def get_transition_rule(from_state: ApprovalStatus, action: ApprovalAction) -> Optional[TransitionRule]:
    """Get the transition rule for a status/action combination."""
    return TRANSITION_TARGETS.get((from_state, action))


def get_target_state(from_state: ApprovalStatus, action: ApprovalAction) -> Optional[ApprovalStatus]:
    """Get the target status for an action."""
    rule = get_transition_rule(from_state, action)
    return rule.to_state if rule else None

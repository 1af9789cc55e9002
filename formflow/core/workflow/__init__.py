"""Approval workflow engine.

Only the database-free building blocks are exported here; the services
(``definitions``, ``lifecycle``, ``processor``) import the models, which in
turn import ``states``, so they are imported from their own modules.
"""

from .evaluator import count_approved, is_stage_complete
from .machine import ApprovalStateMachine
from .states import (
    ApprovalAction,
    ApprovalStatus,
    InstanceStatus,
    StagePolicy,
    SubmissionStatus,
    WorkflowType,
    can_transition,
    get_target_state,
)

__all__ = [
    "ApprovalAction",
    "ApprovalStateMachine",
    "ApprovalStatus",
    "InstanceStatus",
    "StagePolicy",
    "SubmissionStatus",
    "WorkflowType",
    "can_transition",
    "count_approved",
    "get_target_state",
    "is_stage_complete",
]

"""Database models for FormFlow."""

from formflow.db.models.user import User
from formflow.db.models.submission import Submission
from formflow.db.models.workflow import Workflow, WorkflowStage
from formflow.db.models.instance import WorkflowInstance, Approval
from formflow.db.models.audit import AuditLog, AuditAction

__all__ = [
    "User",
    "Submission",
    "Workflow",
    "WorkflowStage",
    "WorkflowInstance",
    "Approval",
    "AuditLog",
    "AuditAction",
]

"""Default collaborator implementations for the approval engine."""

from .audit import AuditService
from .directory import UserDirectory
from .notifications import TeamsNotificationDispatcher
from .submissions import SubmissionStatusRecorder, SubmissionWorkflowTrigger

__all__ = [
    "AuditService",
    "UserDirectory",
    "TeamsNotificationDispatcher",
    "SubmissionStatusRecorder",
    "SubmissionWorkflowTrigger",
]

"""Audit log model for FormFlow.

Entries are append-only; the engine never updates or deletes them.
"""

import uuid
from enum import Enum
from typing import Optional, Dict, Any
from sqlalchemy import Column, String, DateTime, JSON, Uuid

from formflow.db.base import Base, utcnow


class AuditAction(str, Enum):
    """Actions recorded by the approval engine."""
    WORKFLOW_CREATED = "WORKFLOW_CREATED"
    WORKFLOW_UPDATED = "WORKFLOW_UPDATED"
    WORKFLOW_STARTED = "WORKFLOW_STARTED"
    WORKFLOW_RESTARTED = "WORKFLOW_RESTARTED"
    APPROVAL_ACTION = "APPROVAL_ACTION"
    SUBMISSION_APPROVED = "SUBMISSION_APPROVED"
    SUBMISSION_DECLINED = "SUBMISSION_DECLINED"
    SUBMISSION_REJECTED = "SUBMISSION_REJECTED"


class AuditLog(Base):
    """Append-only audit log entry."""
    __tablename__ = "audit_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # Actor (None for system actions such as workflow completion)
    user_id = Column(Uuid, nullable=True, index=True)

    action = Column(String(100), nullable=False, index=True)
    entity_type = Column(String(100), nullable=False, index=True)
    entity_id = Column(Uuid, nullable=True, index=True)
    details = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=utcnow, index=True)

    def __repr__(self) -> str:
        return f"<AuditLog {self.action} on {self.entity_type} by user {self.user_id}>"

    @classmethod
    def create_entry(
        cls,
        action: str,
        entity_type: str,
        *,
        user_id: Optional[uuid.UUID] = None,
        entity_id: Optional[uuid.UUID] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> "AuditLog":
        """
        Factory method to create a new audit log entry.

        Args:
            action: Action performed (an ``AuditAction`` or free-form string)
            entity_type: Type of entity (e.g. 'Workflow', 'Approval', 'Submission')
            user_id: ID of user performing the action (None for system actions)
            entity_id: ID of affected entity
            details: Additional context
        """
        return cls(
            action=action.value if isinstance(action, AuditAction) else action,
            entity_type=entity_type,
            user_id=user_id,
            entity_id=entity_id,
            details=details,
        )

"""Workflow definition models.

A workflow belongs to exactly one form and owns an ordered list of stages.
Stages are replaced wholesale on update, never patched.
"""

import uuid
from typing import List
from sqlalchemy import Column, String, DateTime, JSON, ForeignKey, Integer, Enum as SAEnum, Uuid
from sqlalchemy.orm import relationship

from formflow.core.workflow.states import StagePolicy, WorkflowType
from formflow.db.base import Base, utcnow


class Workflow(Base):
    """Approval workflow definition bound to a single form."""
    __tablename__ = "workflows"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    form_id = Column(Uuid, unique=True, nullable=False, index=True)
    type = Column(
        SAEnum(WorkflowType, native_enum=False, length=50, validate_strings=True),
        nullable=False,
    )

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    stages = relationship(
        "WorkflowStage",
        back_populates="workflow",
        order_by="WorkflowStage.order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    instances = relationship("WorkflowInstance", back_populates="workflow")

    def __repr__(self) -> str:
        return f"<Workflow form={self.form_id} stages={len(self.stages)}>"


class WorkflowStage(Base):
    """
    One ordered step of a workflow.

    ``order`` is taken verbatim from the caller; gaps and duplicates are
    allowed. Approver ids are stored as strings in a JSON list.
    """
    __tablename__ = "workflow_stages"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    workflow_id = Column(Uuid, ForeignKey("workflows.id", ondelete="CASCADE"), nullable=False, index=True)
    order = Column(Integer, nullable=False)
    name = Column(String(200), nullable=True)
    policy = Column(
        SAEnum(StagePolicy, native_enum=False, length=50, validate_strings=True),
        nullable=False,
    )
    approver_ids = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    workflow = relationship("Workflow", back_populates="stages")

    @property
    def approvers(self) -> List[uuid.UUID]:
        return [uuid.UUID(str(a)) for a in self.approver_ids or []]

    @property
    def approver_count(self) -> int:
        return len(self.approver_ids or [])

    def __repr__(self) -> str:
        return f"<WorkflowStage #{self.order} {self.policy.value}>"

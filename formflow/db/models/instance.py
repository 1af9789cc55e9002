"""Workflow instance and approval models.

An instance tracks one submission through the stages of its workflow and
exclusively owns the approvals fanned out for it.
"""

import uuid
from sqlalchemy import Column, DateTime, ForeignKey, Text, UniqueConstraint, Enum as SAEnum, Uuid
from sqlalchemy.orm import relationship

from formflow.core.workflow.states import ApprovalStatus, InstanceStatus
from formflow.db.base import Base, utcnow


class WorkflowInstance(Base):
    """
    One execution of a workflow against one submission.

    Restarting resets the row in place; it is never recreated.
    """
    __tablename__ = "workflow_instances"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    workflow_id = Column(Uuid, ForeignKey("workflows.id", ondelete="CASCADE"), nullable=False, index=True)
    submission_id = Column(Uuid, unique=True, nullable=False, index=True)
    current_stage_id = Column(
        Uuid, ForeignKey("workflow_stages.id", ondelete="SET NULL"), nullable=True
    )
    status = Column(
        SAEnum(InstanceStatus, native_enum=False, length=50, validate_strings=True),
        nullable=False,
        default=InstanceStatus.IN_PROGRESS,
        index=True,
    )
    started_at = Column(DateTime, default=utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    workflow = relationship("Workflow", back_populates="instances", lazy="selectin")
    approvals = relationship(
        "Approval",
        back_populates="instance",
        cascade="all, delete-orphan",
        order_by="Approval.created_at",
        lazy="selectin",
    )

    def approvals_for_stage(self, stage_id: uuid.UUID) -> list["Approval"]:
        return [a for a in self.approvals if a.stage_id == stage_id]

    def __repr__(self) -> str:
        return f"<WorkflowInstance submission={self.submission_id} [{self.status.value}]>"


class Approval(Base):
    """
    One approver's decision within one stage of one instance.

    Immutable once it leaves PENDING.
    """
    __tablename__ = "approvals"
    __table_args__ = (
        UniqueConstraint("instance_id", "stage_id", "approver_id", name="uq_approval_assignment"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    instance_id = Column(Uuid, ForeignKey("workflow_instances.id", ondelete="CASCADE"), nullable=False, index=True)
    # Nullable so history survives a stage-set replacement
    stage_id = Column(Uuid, ForeignKey("workflow_stages.id", ondelete="SET NULL"), nullable=True, index=True)
    approver_id = Column(Uuid, nullable=False, index=True)

    status = Column(
        SAEnum(ApprovalStatus, native_enum=False, length=50, validate_strings=True),
        nullable=False,
        default=ApprovalStatus.PENDING,
        index=True,
    )
    comments = Column(Text, nullable=True)
    declined_reason = Column(Text, nullable=True)

    approved_at = Column(DateTime, nullable=True)
    declined_at = Column(DateTime, nullable=True)
    rejected_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    instance = relationship("WorkflowInstance", back_populates="approvals")

    def __repr__(self) -> str:
        return f"<Approval approver={self.approver_id} [{self.status.value}]>"

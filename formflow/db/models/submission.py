"""Submission record the engine reports outcomes to.

The submission itself (form data, submitter, drafts) is owned elsewhere;
only the fields the engine writes are modelled here.
"""

import uuid
from sqlalchemy import Column, DateTime, Enum as SAEnum, Uuid

from formflow.core.workflow.states import SubmissionStatus
from formflow.db.base import Base, utcnow


class Submission(Base):
    __tablename__ = "submissions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    form_id = Column(Uuid, nullable=False, index=True)
    status = Column(
        SAEnum(SubmissionStatus, native_enum=False, length=50, validate_strings=True),
        nullable=False,
        default=SubmissionStatus.DRAFT,
        index=True,
    )
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<Submission {self.id} [{self.status.value}]>"

"""Submission integration.

The recorder writes engine outcomes onto the submission row; the trigger
starts or restarts a form's workflow when a submission is (re)submitted.
"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from formflow.core.workflow.definitions import WorkflowDefinitionService
from formflow.core.workflow.lifecycle import InstanceLifecycleManager
from formflow.core.workflow.states import SubmissionStatus
from formflow.db.base import utcnow
from formflow.db.models import Submission, WorkflowInstance

logger = logging.getLogger(__name__)


class SubmissionStatusRecorder:
    """Default SubmissionOutcomeSink backed by the ``submissions`` table."""

    def record(self, db: Session, submission_id: UUID, status: SubmissionStatus) -> None:
        submission = db.get(Submission, submission_id)
        if not submission:
            # Submissions are owned elsewhere; a missing row is not our failure
            logger.warning(f"Submission {submission_id} not found; outcome {status.value} not recorded")
            return

        submission.status = status
        if status == SubmissionStatus.APPROVED:
            submission.completed_at = utcnow()
        db.flush()


class SubmissionWorkflowTrigger:
    """Runs a form's workflow when one of its submissions is submitted."""

    def __init__(self, definitions: WorkflowDefinitionService, lifecycle: InstanceLifecycleManager):
        self._definitions = definitions
        self._lifecycle = lifecycle

    def on_submitted(
        self,
        form_id: UUID,
        submission_id: UUID,
        *,
        actor_id: Optional[UUID] = None,
    ) -> Optional[WorkflowInstance]:
        """
        Start the form's workflow for a submission, or restart it on resubmission.

        Returns:
            The running instance, or None if the form has no workflow
        """
        workflow = self._definitions.get_workflow_for_form(form_id)
        if not workflow:
            logger.debug(f"Form {form_id} has no workflow; submission {submission_id} not routed")
            return None

        existing = self._lifecycle.get_instance_for_submission(submission_id)
        if existing:
            return self._lifecycle.restart_workflow(existing.id, actor_id=actor_id)
        return self._lifecycle.start_workflow(workflow.id, submission_id, actor_id=actor_id)

"""Wiring for the approval engine.

Builds the definition store, lifecycle manager and processor around one
session factory and one set of collaborators. Any collaborator can be
swapped out, which is how the test suite substitutes recording fakes.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import sessionmaker

from formflow.common.logger import configure_logging
from formflow.core.config import Settings, get_settings
from formflow.core.workflow.collaborators import (
    ApproverDirectory,
    AuditSink,
    NotificationDispatcher,
    SubmissionOutcomeSink,
)
from formflow.core.workflow.definitions import WorkflowDefinitionService
from formflow.core.workflow.lifecycle import InstanceLifecycleManager
from formflow.core.workflow.processor import ApprovalProcessor
from formflow.db.session import get_session_factory
from formflow.services import (
    AuditService,
    SubmissionStatusRecorder,
    SubmissionWorkflowTrigger,
    TeamsNotificationDispatcher,
    UserDirectory,
)

logger = logging.getLogger(__name__)


@dataclass
class WorkflowEngine:
    """The engine's public operations, grouped by the service that owns them."""

    definitions: WorkflowDefinitionService
    lifecycle: InstanceLifecycleManager
    processor: ApprovalProcessor
    trigger: SubmissionWorkflowTrigger


def create_engine_services(
    settings: Optional[Settings] = None,
    session_factory: Optional[sessionmaker] = None,
    *,
    directory: Optional[ApproverDirectory] = None,
    notifier: Optional[NotificationDispatcher] = None,
    audit: Optional[AuditSink] = None,
    outcomes: Optional[SubmissionOutcomeSink] = None,
    setup_logging: bool = True,
) -> WorkflowEngine:
    """
    Build a fully wired WorkflowEngine.

    Args:
        settings: Application settings (defaults to ``get_settings()``)
        session_factory: Session factory (defaults to the configured database)
        directory: Approver directory (defaults to ``UserDirectory``)
        notifier: Notification dispatcher (defaults to Teams)
        audit: Audit sink (defaults to the ``audit_logs`` table)
        outcomes: Submission outcome sink (defaults to the ``submissions`` table)
        setup_logging: Configure the ``formflow`` logger from settings

    Returns:
        WorkflowEngine sharing one lock registry across its services
    """
    settings = settings or get_settings()
    if setup_logging:
        configure_logging(settings)

    session_factory = session_factory or get_session_factory()
    directory = directory or UserDirectory()
    notifier = notifier or TeamsNotificationDispatcher(session_factory, settings)
    audit = audit or AuditService(session_factory)
    outcomes = outcomes or SubmissionStatusRecorder()

    definitions = WorkflowDefinitionService(
        session_factory,
        directory,
        audit,
        block_edits_in_flight=settings.block_definition_edits_in_flight,
    )
    lifecycle = InstanceLifecycleManager(session_factory, notifier, audit, outcomes)
    processor = ApprovalProcessor(session_factory, lifecycle, outcomes, audit, notifier)

    logger.debug(f"{settings.app_name} approval engine initialised")
    return WorkflowEngine(
        definitions=definitions,
        lifecycle=lifecycle,
        processor=processor,
        trigger=SubmissionWorkflowTrigger(definitions, lifecycle),
    )

"""Pytest configuration and shared fixtures.

Every test that touches the database gets its own file-backed SQLite
database under ``tmp_path``. File-backed rather than in-memory so that the
worker threads in the concurrency tests each get a real connection.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

import pytest
from sqlalchemy import create_engine, event

import formflow.db.models  # noqa: F401  (registers the tables on Base.metadata)
from formflow.bootstrap import create_engine_services
from formflow.core.config import Settings
from formflow.core.workflow.states import StagePolicy, SubmissionStatus, WorkflowType
from formflow.db.base import Base
from formflow.db.session import create_session_factory

from tests.factories import create_submission, create_user


@dataclass
class AuditEntry:
    action: str
    entity_type: str
    actor_id: Optional[UUID]
    entity_id: Optional[UUID]
    metadata: Optional[Dict[str, Any]] = None


class RecordingAudit:
    """AuditSink that keeps entries in memory."""

    def __init__(self):
        self.entries: List[AuditEntry] = []

    def append(self, action, entity_type, actor_id, entity_id, metadata=None):
        self.entries.append(AuditEntry(action, entity_type, actor_id, entity_id, metadata))

    @property
    def actions(self) -> List[str]:
        return [e.action for e in self.entries]


@dataclass
class RecordingNotifier:
    """NotificationDispatcher that keeps calls in memory."""

    approvers: List[tuple] = field(default_factory=list)
    submitters: List[tuple] = field(default_factory=list)

    def notify_approvers(self, instance_id: UUID, stage_id: UUID) -> None:
        self.approvers.append((instance_id, stage_id))

    def notify_submitter(self, submission_id: UUID, outcome: SubmissionStatus) -> None:
        self.submitters.append((submission_id, outcome))


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@pytest.fixture
def settings():
    """Settings isolated from the environment and any local .env file."""
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        teams_webhook_url=None,
        app_url="https://forms.example.com",
    )


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
def db_engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'formflow.db'}",
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def db_session(session_factory):
    """Session for arranging data; factories flush, fixtures commit."""
    with session_factory() as session:
        yield session


@pytest.fixture
def user_factory(db_session):
    def _create(**kwargs):
        user = create_user(db_session, **kwargs)
        db_session.commit()
        return user
    return _create


@pytest.fixture
def submission_factory(db_session):
    def _create(**kwargs):
        submission = create_submission(db_session, **kwargs)
        db_session.commit()
        return submission
    return _create


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


@pytest.fixture
def audit():
    return RecordingAudit()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def workflow_engine(settings, session_factory, audit, notifier):
    """Fully wired engine with the users/submissions tables as directory and
    outcome sink, and recording fakes for audit and notifications."""
    return create_engine_services(
        settings,
        session_factory,
        notifier=notifier,
        audit=audit,
        setup_logging=False,
    )


@pytest.fixture
def workflow_builder(workflow_engine, user_factory):
    """
    Create a workflow from ``(policy, approver_count)`` pairs.

    Stages get orders 0..n-1 and freshly created active approvers, which
    are available afterwards as ``workflow.stages[i].approvers``.
    """

    def _build(*stages, type=WorkflowType.SEQUENTIAL, form_id=None):
        definitions = []
        for order, (policy, count) in enumerate(stages):
            approvers = [user_factory() for _ in range(count)]
            definitions.append({
                "order": order,
                "name": f"Stage {order + 1}",
                "policy": StagePolicy(policy),
                "approver_ids": [u.id for u in approvers],
            })
        return workflow_engine.definitions.create_workflow(form_id or uuid4(), type, definitions)

    return _build

"""Audit trail writer.

Entries are written in their own session after the transition they
describe has committed. A failed write is logged and dropped.
"""

import logging
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.orm import sessionmaker

from formflow.db.models.audit import AuditLog

logger = logging.getLogger(__name__)


class AuditService:
    """Default AuditSink backed by the ``audit_logs`` table."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def append(
        self,
        action: str,
        entity_type: str,
        actor_id: Optional[UUID],
        entity_id: Optional[UUID],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        try:
            with self._session_factory.begin() as db:
                db.add(
                    AuditLog.create_entry(
                        action,
                        entity_type,
                        user_id=actor_id,
                        entity_id=entity_id,
                        details=metadata,
                    )
                )
        except Exception:
            logger.exception(f"Failed to create audit log for {action} on {entity_type} {entity_id}")

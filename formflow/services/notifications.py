"""Notification delivery to a Microsoft Teams incoming webhook.

Handles:
- Approval-required cards for each approver of a newly active stage
- Outcome cards when a submission is approved, declined or rejected

Delivery is best effort: nothing here raises to the caller. When no
webhook URL is configured, notifications are skipped.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

import httpx
from sqlalchemy.orm import sessionmaker

from formflow.core.config import Settings, get_settings
from formflow.core.workflow.states import SubmissionStatus
from formflow.db.models import User, WorkflowInstance

logger = logging.getLogger(__name__)


OUTCOME_COLORS = {
    SubmissionStatus.APPROVED: "2EB886",
    SubmissionStatus.DECLINED: "F2C744",
    SubmissionStatus.REJECTED: "D63333",
}


def build_approval_card(
    approver_email: str,
    stage_name: str,
    submission_id: UUID,
    review_url: str,
) -> Dict[str, Any]:
    """Build the MessageCard asking an approver to review a submission."""
    return {
        "@type": "MessageCard",
        "@context": "https://schema.org/extensions",
        "summary": "New Approval Required",
        "themeColor": "0078D4",
        "title": "New Approval Required",
        "sections": [{
            "activityTitle": f"Submission {submission_id}",
            "facts": [
                {"name": "Stage", "value": stage_name},
                {"name": "Approver", "value": approver_email},
            ],
            "markdown": True,
        }],
        "potentialAction": [{
            "@type": "OpenUri",
            "name": "Review Submission",
            "targets": [{"os": "default", "uri": review_url}],
        }],
    }


def build_outcome_card(submission_id: UUID, outcome: SubmissionStatus) -> Dict[str, Any]:
    title = f"Submission {outcome.value.lower()}"
    return {
        "@type": "MessageCard",
        "@context": "https://schema.org/extensions",
        "summary": title,
        "themeColor": OUTCOME_COLORS.get(outcome, "808080"),
        "title": title,
        "sections": [{
            "activityTitle": f"Submission {submission_id}",
            "facts": [{"name": "Status", "value": outcome.value}],
        }],
    }


class TeamsNotificationDispatcher:
    """Default NotificationDispatcher posting MessageCards with httpx."""

    def __init__(
        self,
        session_factory: sessionmaker,
        settings: Optional[Settings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the dispatcher.

        Args:
            session_factory: Factory for read-only database sessions
            settings: Application settings (defaults to ``get_settings()``)
            transport: Optional httpx transport, used by tests
        """
        self._session_factory = session_factory
        self.settings = settings or get_settings()
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.settings.teams_webhook_url)

    def notify_approvers(self, instance_id: UUID, stage_id: UUID) -> None:
        if not self.enabled:
            logger.debug("Teams webhook not configured, skipping approver notification")
            return

        try:
            cards = self._approval_cards(instance_id, stage_id)
            if cards:
                self._send(cards)
        except Exception:
            logger.exception(f"Failed to notify approvers for instance {instance_id} stage {stage_id}")

    def notify_submitter(self, submission_id: UUID, outcome: SubmissionStatus) -> None:
        if not self.enabled:
            logger.debug("Teams webhook not configured, skipping outcome notification")
            return

        try:
            self._send([build_outcome_card(submission_id, outcome)])
        except Exception:
            logger.exception(f"Failed to send {outcome.value} notification for submission {submission_id}")

    def _approval_cards(self, instance_id: UUID, stage_id: UUID) -> List[Dict[str, Any]]:
        with self._session_factory() as db:
            instance = db.get(WorkflowInstance, instance_id)
            if not instance:
                return []

            stage = next((s for s in instance.workflow.stages if s.id == stage_id), None)
            if not stage:
                return []

            approvers = db.query(User).filter(
                User.id.in_(stage.approvers),
                User.is_active.is_(True),
            ).all()

            review_url = f"{self.settings.approvals_url}?submission={instance.submission_id}"
            return [
                build_approval_card(
                    approver.email,
                    stage.name or "Approval Required",
                    instance.submission_id,
                    review_url,
                )
                for approver in approvers
            ]

    def _send(self, payloads: List[Dict[str, Any]]) -> int:
        # Synchronous entry point; must not be called from a running event loop
        return asyncio.run(self._deliver(payloads))

    async def _deliver(self, payloads: List[Dict[str, Any]]) -> int:
        """Post each payload; returns how many were accepted."""
        delivered = 0
        async with httpx.AsyncClient(
            timeout=self.settings.webhook_timeout,
            transport=self._transport,
        ) as client:
            for payload in payloads:
                try:
                    response = await client.post(self.settings.teams_webhook_url, json=payload)
                    response.raise_for_status()
                    delivered += 1
                except httpx.HTTPError as e:
                    logger.warning(f"Failed to send Teams notification: {e}")
        return delivered

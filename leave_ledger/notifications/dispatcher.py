"""Outbox dispatcher — delivers pending messages with exponential backoff.

A message that fails is retried after ``backoff * 2 ** (attempts - 1)``
seconds; once ``max_attempts`` is reached it is marked ``failed`` and left
for an operator.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.common.constants import EmailTemplate, OutboxChannel, OutboxStatus
from leave_ledger.config import settings
from leave_ledger.core.models import utcnow
from leave_ledger.notifications.email import EmailClient, render_leave_status_email
from leave_ledger.notifications.models import OutboxMessage
from leave_ledger.notifications.repository import OutboxRepository
from leave_ledger.notifications.schemas import DispatchResult
from leave_ledger.notifications.service import NotificationService

logger = logging.getLogger(__name__)


def next_retry_at(attempts: int, now: datetime, backoff_seconds: int) -> datetime:
    """When a message that has failed *attempts* times becomes due again."""
    return now + timedelta(seconds=backoff_seconds * 2 ** max(attempts - 1, 0))


class OutboxDispatcher:

    def __init__(
        self,
        db: AsyncSession,
        email_client: Optional[EmailClient] = None,
        *,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[int] = None,
    ) -> None:
        self.db = db
        self.outbox = OutboxRepository(db)
        self.email_client = email_client or EmailClient()
        self.max_attempts = max_attempts or settings.OUTBOX_MAX_ATTEMPTS
        self.backoff_seconds = (
            settings.OUTBOX_BACKOFF_SECONDS if backoff_seconds is None else backoff_seconds
        )

    async def dispatch_pending(
        self, limit: Optional[int] = None, *, now: Optional[datetime] = None,
    ) -> DispatchResult:
        """Deliver every due message once; returns per-outcome counts."""
        now = now or utcnow()
        due = await self.outbox.list_due(limit=limit or settings.OUTBOX_BATCH_SIZE, now=now)
        result = DispatchResult()

        for message in due:
            result.processed += 1
            message.attempts = (message.attempts or 0) + 1
            try:
                # Attempt bookkeeping is flushed before the savepoint opens
                async with self.db.begin_nested():
                    await self._deliver(message)
            except Exception as exc:
                message.last_error = str(exc)[:1000]
                if message.attempts >= self.max_attempts:
                    message.status = OutboxStatus.failed
                    result.failed += 1
                    logger.error(
                        "Outbox message %s failed permanently after %s attempts: %s",
                        message.id, message.attempts, exc,
                    )
                else:
                    message.next_attempt_at = next_retry_at(
                        message.attempts, now, self.backoff_seconds,
                    )
                    result.retried += 1
                    logger.warning(
                        "Outbox message %s attempt %s failed, retrying at %s: %s",
                        message.id, message.attempts, message.next_attempt_at, exc,
                    )
            else:
                message.status = OutboxStatus.sent
                message.sent_at = now
                message.last_error = None
                result.sent += 1

        await self.db.flush()
        if result.processed:
            logger.info(
                "Outbox pass: processed=%s sent=%s retried=%s failed=%s",
                result.processed, result.sent, result.retried, result.failed,
            )
        return result

    async def _deliver(self, message: OutboxMessage) -> None:
        payload = message.payload
        if message.channel == OutboxChannel.email:
            subject, html_body = render_leave_status_email(
                EmailTemplate(payload["template"]), payload.get("data", {}),
            )
            await self.email_client.send(
                to=payload["to"], subject=subject, html_body=html_body,
            )
        elif message.channel == OutboxChannel.in_app:
            await NotificationService.create_from_payload(
                self.db, message.tenant_id, payload,
            )
        else:
            raise ValueError(f"Unknown outbox channel: {message.channel}")

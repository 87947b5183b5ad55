"""Outbox and notification persistence."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.common.constants import OutboxChannel, OutboxStatus
from leave_ledger.core.models import utcnow
from leave_ledger.notifications.models import Notification, OutboxMessage


class OutboxRepository:

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def enqueue(
        self,
        tenant_id: uuid.UUID,
        channel: OutboxChannel,
        payload: dict[str, Any],
    ) -> OutboxMessage:
        message = OutboxMessage(
            tenant_id=tenant_id,
            channel=channel,
            payload=payload,
            status=OutboxStatus.pending,
            attempts=0,
            next_attempt_at=utcnow(),
        )
        self.db.add(message)
        await self.db.flush()
        return message

    async def list_due(
        self, *, limit: int, now: Optional[datetime] = None,
    ) -> Sequence[OutboxMessage]:
        """Pending messages whose backoff has elapsed, oldest first."""
        now = now or utcnow()
        result = await self.db.execute(
            select(OutboxMessage)
            .where(
                OutboxMessage.status == OutboxStatus.pending,
                OutboxMessage.next_attempt_at <= now,
            )
            .order_by(OutboxMessage.created_at)
            .limit(limit)
        )
        return result.scalars().all()

    async def list_for_tenant(
        self, tenant_id: uuid.UUID, *, status: Optional[OutboxStatus] = None,
    ) -> Sequence[OutboxMessage]:
        query = (
            select(OutboxMessage)
            .where(OutboxMessage.tenant_id == tenant_id)
            .order_by(OutboxMessage.created_at)
        )
        if status is not None:
            query = query.where(OutboxMessage.status == status)
        result = await self.db.execute(query)
        return result.scalars().all()


class NotificationRepository:

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def list_for_recipient(
        self, tenant_id: uuid.UUID, recipient_email: str,
    ) -> Sequence[Notification]:
        result = await self.db.execute(
            select(Notification)
            .where(
                Notification.tenant_id == tenant_id,
                Notification.recipient_email == recipient_email,
            )
            .order_by(Notification.created_at.desc())
        )
        return result.scalars().all()

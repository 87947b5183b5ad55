"""Notification service — in-app records and outbox producers.

Producers never talk to the email provider or write ``notifications`` rows
directly: they enqueue an ``OutboxMessage`` in the caller's transaction and
the dispatcher delivers it later.
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.common.constants import (
    EmailTemplate,
    LeaveStatus,
    NotificationCategory,
    NotificationType,
    OutboxChannel,
)
from leave_ledger.core.models import User
from leave_ledger.notifications.models import Notification, OutboxMessage
from leave_ledger.notifications.repository import OutboxRepository

if TYPE_CHECKING:
    from leave_ledger.leave.models import Leave

logger = logging.getLogger(__name__)


# ── Core service ────────────────────────────────────────────────────


class NotificationService:
    """In-app notification writes."""

    @staticmethod
    async def create_notification(
        db: AsyncSession,
        *,
        tenant_id: uuid.UUID,
        recipient_email: str,
        type: NotificationType,
        title: str,
        message: str,
        category: NotificationCategory = NotificationCategory.general,
        entity_type: Optional[str] = None,
        entity_id: Optional[uuid.UUID] = None,
        sender_name: Optional[str] = None,
    ) -> Notification:
        """Create a new notification and flush to DB."""
        notification = Notification(
            tenant_id=tenant_id,
            recipient_email=recipient_email,
            type=type,
            category=category,
            title=title,
            message=message,
            entity_type=entity_type,
            entity_id=entity_id,
            sender_name=sender_name,
            is_read=False,
        )
        db.add(notification)
        await db.flush()
        return notification

    @staticmethod
    async def create_from_payload(
        db: AsyncSession, tenant_id: uuid.UUID, payload: dict[str, Any],
    ) -> Notification:
        """Materialize an ``in_app`` outbox payload."""
        entity_id = payload.get("entity_id")
        return await NotificationService.create_notification(
            db,
            tenant_id=tenant_id,
            recipient_email=payload["recipient_email"],
            type=NotificationType(payload["type"]),
            title=payload["title"],
            message=payload["message"],
            category=NotificationCategory(payload.get("category", "general")),
            entity_type=payload.get("entity_type"),
            entity_id=uuid.UUID(entity_id) if entity_id else None,
            sender_name=payload.get("sender_name"),
        )


# ── Leave status producer ───────────────────────────────────────────

_STATUS_TITLES = {
    LeaveStatus.approved: "Leave Approved",
    LeaveStatus.rejected: "Leave Rejected",
    LeaveStatus.cancelled: "Leave Cancelled",
}

_STATUS_TYPES = {
    LeaveStatus.approved: NotificationType.leave_approval,
    LeaveStatus.rejected: NotificationType.leave_rejection,
    LeaveStatus.cancelled: NotificationType.leave_cancellation,
}


class LeaveStatusNotifier:
    """Enqueues the email + in-app pair for a leave status change."""

    def __init__(self, outbox: OutboxRepository) -> None:
        self.outbox = outbox

    @classmethod
    def for_session(cls, db: AsyncSession) -> "LeaveStatusNotifier":
        return cls(OutboxRepository(db))

    async def enqueue_status_change(
        self,
        leave: "Leave",
        *,
        leave_type_name: Optional[str],
        user: Optional[User],
        approver: Optional[User],
        rejection_reason: Optional[str] = None,
    ) -> list[OutboxMessage]:
        status = LeaveStatus(leave.status)
        recipient = leave.user_email or (user.email if user else None)
        if not recipient:
            logger.error("No recipient email for leave %s; nothing enqueued", leave.id)
            return []

        approver_name = approver.display_name if approver else "Administrator"
        approved = status == LeaveStatus.approved
        email_payload = {
            "to": recipient,
            "template": (
                EmailTemplate.leave_approved if approved else EmailTemplate.leave_cancelled
            ).value,
            "data": {
                "member_name": user.display_name if user else recipient,
                "member_email": recipient,
                "leave_type": leave_type_name or "Leave",
                "start_date": leave.start_date.isoformat(),
                "end_date": leave.end_date.isoformat(),
                "duration": leave.duration.value,
                "total_days": str(leave.total_days),
                "approved_by": approver_name if approved else None,
                "cancelled_by": None if approved else approver_name,
                "status_text": status.value,
                "reason": None if approved else (rejection_reason or "No reason provided"),
                "description": rejection_reason or (
                    "Your leave has been approved." if approved else None
                ),
            },
        }

        if approved:
            message = f"Your leave application for {leave.start_date} has been approved."
        else:
            message = (
                f"Your leave application for {leave.start_date} has been "
                f"{status.value}. Reason: {rejection_reason or 'None'}"
            )
        in_app_payload = {
            "recipient_email": recipient,
            "type": _STATUS_TYPES[status].value,
            "title": _STATUS_TITLES[status],
            "message": message,
            "entity_type": "leave",
            "entity_id": str(leave.id),
            "category": (
                NotificationCategory.general if approved else NotificationCategory.alert
            ).value,
            "sender_name": "Manager" if approver else "System",
        }

        messages = [
            await self.outbox.enqueue(leave.tenant_id, OutboxChannel.email, email_payload),
            await self.outbox.enqueue(leave.tenant_id, OutboxChannel.in_app, in_app_payload),
        ]
        logger.info(
            "Enqueued %s notifications for leave %s -> %s",
            len(messages), leave.id, recipient,
        )
        return messages

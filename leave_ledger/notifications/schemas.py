"""Notification Pydantic v2 schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from leave_ledger.common.constants import (
    NotificationCategory,
    NotificationType,
    OutboxChannel,
    OutboxStatus,
)


class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    tenant_id: uuid.UUID
    recipient_email: str
    type: NotificationType
    category: NotificationCategory
    title: str
    message: str
    entity_type: Optional[str] = None
    entity_id: Optional[uuid.UUID] = None
    sender_name: Optional[str] = None
    is_read: bool = False
    created_at: datetime


class OutboxMessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    channel: OutboxChannel
    status: OutboxStatus
    attempts: int
    last_error: Optional[str] = None
    next_attempt_at: datetime
    sent_at: Optional[datetime] = None


class DispatchResult(BaseModel):
    """Outcome of one dispatcher pass."""

    processed: int = 0
    sent: int = 0
    retried: int = 0
    failed: int = 0

"""Notification router — outbox dispatch and inspection plus in-app listing."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.common.constants import OutboxStatus
from leave_ledger.common.rate_limit import BATCH_RATE_LIMIT, limiter
from leave_ledger.database import get_db
from leave_ledger.notifications.dispatcher import OutboxDispatcher
from leave_ledger.notifications.repository import NotificationRepository, OutboxRepository
from leave_ledger.notifications.schemas import DispatchResult, NotificationOut, OutboxMessageOut

router = APIRouter(prefix="", tags=["notifications"])


# ── POST /dispatch ──────────────────────────────────────────────────

@router.post("/dispatch", response_model=DispatchResult)
@limiter.limit(BATCH_RATE_LIMIT)
async def dispatch_outbox(
    request: Request,
    limit: Optional[int] = Query(None, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    """Run one delivery pass over due outbox messages."""
    return await OutboxDispatcher(db).dispatch_pending(limit)


# ── GET / ───────────────────────────────────────────────────────────

@router.get("", response_model=list[NotificationOut])
async def list_notifications(
    tenant_id: uuid.UUID = Query(...),
    recipient_email: str = Query(..., min_length=3),
    db: AsyncSession = Depends(get_db),
):
    """In-app notifications for one recipient, newest first."""
    return await NotificationRepository(db).list_for_recipient(tenant_id, recipient_email)


# ── GET /outbox ─────────────────────────────────────────────────────

@router.get("/outbox", response_model=list[OutboxMessageOut])
async def list_outbox(
    tenant_id: uuid.UUID = Query(...),
    status: Optional[OutboxStatus] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Queued, delivered and failed messages of a tenant, oldest first."""
    return await OutboxRepository(db).list_for_tenant(tenant_id, status=status)

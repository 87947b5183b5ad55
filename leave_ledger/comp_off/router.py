"""Comp-off routers — overtime processing trigger and credit administration."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.common.rate_limit import BATCH_RATE_LIMIT, limiter
from leave_ledger.comp_off.schemas import (
    CompOffCreditCreate,
    CompOffCreditOut,
    OvertimeRequest,
    OvertimeResult,
    ReconcileRequest,
    ReconcileResult,
)
from leave_ledger.comp_off.service import CompOffService, OvertimeCompOffEngine
from leave_ledger.database import get_db

overtime_router = APIRouter(prefix="", tags=["leave-management"])
router = APIRouter(prefix="", tags=["comp-off"])


# ── POST /leave-management/process-overtime ─────────────────────────

@overtime_router.post("/process-overtime", response_model=OvertimeResult)
async def process_overtime(
    body: OvertimeRequest,
    db: AsyncSession = Depends(get_db),
):
    """Called after a timesheet is saved; credits comp-off for the week's overtime."""
    return await OvertimeCompOffEngine.for_session(db).process(
        body.tenant_id, body.user_email, body.date,
    )


# ── /comp-off/credits ───────────────────────────────────────────────

@router.post("/credits", response_model=CompOffCreditOut, status_code=201)
async def credit_comp_off(
    body: CompOffCreditCreate,
    db: AsyncSession = Depends(get_db),
):
    return await CompOffService.for_session(db).credit_manual(body)


@router.get("/credits", response_model=list[CompOffCreditOut])
async def list_comp_off_credits(
    tenant_id: uuid.UUID = Query(...),
    user_id: Optional[uuid.UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return await CompOffService.for_session(db).list_credits(tenant_id, user_id=user_id)


# ── POST /comp-off/reconcile ────────────────────────────────────────

@router.post("/reconcile", response_model=ReconcileResult)
@limiter.limit(BATCH_RATE_LIMIT)
async def reconcile_comp_off_usage(
    request: Request,
    body: ReconcileRequest,
    db: AsyncSession = Depends(get_db),
):
    """Realign credit ``used_days`` with the comp-off ledger's ``used``."""
    updated = await CompOffService.for_session(db).reconcile_usage(body.tenant_id)
    return ReconcileResult(success=True, updated=updated)

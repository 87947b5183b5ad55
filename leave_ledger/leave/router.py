"""Leave router — leave types, apply, status transitions, balances, allocations.

Authentication is handled upstream; callers pass ``tenant_id`` explicitly and
every referenced entity is checked against it.
"""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.common.constants import MAX_LEDGER_YEAR, MIN_LEDGER_YEAR, LeaveStatus
from leave_ledger.common.pagination import PaginationParams
from leave_ledger.common.rate_limit import BATCH_RATE_LIMIT, limiter
from leave_ledger.database import get_db
from leave_ledger.leave.allocation import AnnualAllocationJob
from leave_ledger.leave.schemas import (
    AnnualAllocationRequest,
    AnnualAllocationResponse,
    IndividualAllocationRequest,
    IndividualAllocationResponse,
    LeaveApplyRequest,
    LeaveBalanceOut,
    LeaveCancelRequest,
    LeaveOut,
    LeaveStatusUpdateRequest,
    LeaveStatusUpdateResponse,
    LeaveTypeCreate,
    LeaveTypeOut,
)
from leave_ledger.leave.service import BalanceStore, LeaveService

router = APIRouter(prefix="", tags=["leave"])


# ── Leave types ─────────────────────────────────────────────────────

@router.post("/types", response_model=LeaveTypeOut, status_code=201)
async def create_leave_type(
    body: LeaveTypeCreate,
    db: AsyncSession = Depends(get_db),
):
    """Create a leave type. ``days_allowed`` is accepted as an alias of ``annual_allowance``."""
    return await LeaveService.for_session(db).create_leave_type(body)


@router.get("/types", response_model=list[LeaveTypeOut])
async def list_leave_types(
    tenant_id: uuid.UUID = Query(...),
    is_active: Optional[bool] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.for_session(db).list_leave_types(tenant_id, is_active=is_active)


# ── POST /apply ─────────────────────────────────────────────────────

@router.post("/apply", response_model=LeaveOut, status_code=201)
async def apply_leave(
    body: LeaveApplyRequest,
    db: AsyncSession = Depends(get_db),
):
    """Apply for leave. Reserves the requested days against the ledger."""
    return await LeaveService.for_session(db).apply_leave(body)


# ── GET /requests ───────────────────────────────────────────────────

@router.get("/requests")
async def list_leave_requests(
    tenant_id: uuid.UUID = Query(...),
    user_id: Optional[uuid.UUID] = Query(None),
    status: Optional[LeaveStatus] = Query(None),
    leave_type_id: Optional[uuid.UUID] = Query(None),
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.for_session(db).list_leaves(
        tenant_id,
        pagination,
        user_id=user_id,
        status=status,
        leave_type_id=leave_type_id,
    )


# ── PUT /{id}/status ────────────────────────────────────────────────

@router.put("/{leave_id}/status", response_model=LeaveStatusUpdateResponse)
async def update_leave_status(
    leave_id: uuid.UUID,
    body: LeaveStatusUpdateRequest,
    db: AsyncSession = Depends(get_db),
):
    """Approve, reject or cancel a pending request."""
    return await LeaveService.for_session(db).update_leave_status(
        leave_id,
        body.status,
        approver_id=body.approver_id,
        rejection_reason=body.rejection_reason,
    )


# ── POST /{id}/cancel ───────────────────────────────────────────────

@router.post("/{leave_id}/cancel", response_model=LeaveStatusUpdateResponse)
async def cancel_leave(
    leave_id: uuid.UUID,
    body: LeaveCancelRequest,
    db: AsyncSession = Depends(get_db),
):
    """Requester cancels their own pending request."""
    return await LeaveService.for_session(db).cancel_leave(
        leave_id, body.user_id, body.reason,
    )


# ── GET /balances ───────────────────────────────────────────────────

@router.get("/balances", response_model=list[LeaveBalanceOut])
async def list_balances(
    tenant_id: uuid.UUID = Query(...),
    user_id: uuid.UUID = Query(...),
    year: int = Query(..., ge=MIN_LEDGER_YEAR, le=MAX_LEDGER_YEAR),
    db: AsyncSession = Depends(get_db),
):
    return await BalanceStore.for_session(db).list_balances(tenant_id, user_id, year)


# ── Allocations ─────────────────────────────────────────────────────

@router.post("/allocations/individual", response_model=IndividualAllocationResponse)
async def allocate_individual_leave(
    body: IndividualAllocationRequest,
    db: AsyncSession = Depends(get_db),
):
    """Set one user's allocation for one leave type and year."""
    balance = await BalanceStore.for_session(db).allocate_individual_leave(
        body.tenant_id, body.user_id, body.leave_type_id, body.days, body.year,
    )
    return IndividualAllocationResponse(
        success=True, balance=LeaveBalanceOut.model_validate(balance),
    )


@router.post("/allocations/annual", response_model=AnnualAllocationResponse)
@limiter.limit(BATCH_RATE_LIMIT)
async def run_annual_allocation(
    request: Request,
    body: AnnualAllocationRequest,
    db: AsyncSession = Depends(get_db),
):
    """Allocate the year's allowance plus carry-forward to every user of a tenant."""
    return await AnnualAllocationJob.for_session(db).run(
        body.tenant_id, body.year, dry_run=body.dry_run,
    )

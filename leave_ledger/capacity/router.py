"""Capacity router."""

import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.capacity.schemas import CapacityOut
from leave_ledger.capacity.service import CapacityCalculator
from leave_ledger.database import get_db

router = APIRouter(prefix="", tags=["leave-management"])


# ── GET /capacity/{user_email} ──────────────────────────────────────

@router.get("/capacity/{user_email}", response_model=CapacityOut)
async def get_capacity(
    user_email: str,
    week_start: date = Query(..., description="First day of the week (yyyy-MM-dd)"),
    tenant_id: uuid.UUID = Query(...),
    db: AsyncSession = Depends(get_db),
):
    """Weekly capacity after approved leave."""
    return await CapacityCalculator.for_session(db).capacity(tenant_id, user_email, week_start)

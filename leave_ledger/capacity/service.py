"""Capacity calculator — weekly hours lost to approved leave. Read-only."""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.capacity.schemas import CapacityOut
from leave_ledger.common.constants import (
    HALF_DAY,
    HOURS_PER_DAY,
    WEEKLY_HOURS_THRESHOLD,
    LeaveDuration,
)
from leave_ledger.common.dates import end_of_week, inclusive_days
from leave_ledger.leave.repository import LeaveRepository


class CapacityCalculator:

    def __init__(self, leaves: LeaveRepository) -> None:
        self.leaves = leaves

    @classmethod
    def for_session(cls, db: AsyncSession) -> "CapacityCalculator":
        return cls(LeaveRepository(db))

    async def capacity(
        self, tenant_id: uuid.UUID, user_email: str, week_start: date,
    ) -> CapacityOut:
        """``week_start`` is used as given; the window ends on that week's Sunday."""
        week_end = end_of_week(week_start)
        leaves = await self.leaves.list_approved_in_window(
            tenant_id, user_email, week_start, week_end,
        )

        leave_days = Decimal("0")
        for leave in leaves:
            days = Decimal(inclusive_days(
                max(leave.start_date, week_start), min(leave.end_date, week_end),
            ))
            if leave.duration == LeaveDuration.half_day:
                days *= HALF_DAY
            leave_days += days

        hours_reduction = leave_days * HOURS_PER_DAY
        original = WEEKLY_HOURS_THRESHOLD
        adjusted = max(Decimal("0"), original - hours_reduction)

        return CapacityOut(
            user_email=user_email,
            week_start=week_start,
            week_end=week_end,
            leave_days=float(leave_days),
            hours_reduction=float(hours_reduction),
            original_capacity=float(original),
            adjusted_capacity=float(adjusted),
            capacity_percentage=float(adjusted / original * 100),
        )

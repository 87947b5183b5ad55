"""Timesheet reads."""

from __future__ import annotations

import uuid
from datetime import date
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.timesheets.models import Timesheet


class TimesheetRepository:

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def list_for_user_between(
        self,
        tenant_id: uuid.UUID,
        user_email: str,
        start: date,
        end: date,
    ) -> Sequence[Timesheet]:
        """Entries with ``start <= date <= end``, in date order."""
        result = await self.db.execute(
            select(Timesheet)
            .where(
                Timesheet.tenant_id == tenant_id,
                Timesheet.user_email == user_email,
                Timesheet.date >= start,
                Timesheet.date <= end,
            )
            .order_by(Timesheet.date)
        )
        return result.scalars().all()

"""Comp-off credit persistence."""

from __future__ import annotations

import uuid
from datetime import date
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.comp_off.models import CompOffCredit


class CompOffCreditRepository:

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def add(self, credit: CompOffCredit) -> CompOffCredit:
        self.db.add(credit)
        await self.db.flush()
        return credit

    async def find_for_week(
        self, tenant_id: uuid.UUID, user_id: uuid.UUID, week_start: date,
    ) -> Optional[CompOffCredit]:
        result = await self.db.execute(
            select(CompOffCredit).where(
                CompOffCredit.tenant_id == tenant_id,
                CompOffCredit.user_id == user_id,
                CompOffCredit.week_start == week_start,
            )
        )
        return result.scalars().first()

    async def list_for_tenant(
        self, tenant_id: uuid.UUID, *, user_id: Optional[uuid.UUID] = None,
    ) -> Sequence[CompOffCredit]:
        query = (
            select(CompOffCredit)
            .where(CompOffCredit.tenant_id == tenant_id)
            .order_by(CompOffCredit.created_at.desc())
        )
        if user_id is not None:
            query = query.where(CompOffCredit.user_id == user_id)
        result = await self.db.execute(query)
        return result.scalars().all()

    async def list_for_user_by_expiry(
        self, tenant_id: uuid.UUID, user_id: uuid.UUID,
    ) -> Sequence[CompOffCredit]:
        """Oldest expiry first; credits without an expiry go last."""
        result = await self.db.execute(
            select(CompOffCredit)
            .where(
                CompOffCredit.tenant_id == tenant_id,
                CompOffCredit.user_id == user_id,
            )
            .order_by(
                CompOffCredit.expires_at.is_(None),
                CompOffCredit.expires_at,
                CompOffCredit.created_at,
            )
        )
        return result.scalars().all()

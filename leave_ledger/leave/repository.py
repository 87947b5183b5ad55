"""Leave repositories — the only code that reads or writes leave tables.

Ledger writes are single ``UPDATE ... SET col = col ± :delta`` statements so
two transitions against the same ledger row cannot lose each other's update.
Status transitions are compare-and-set on ``status = 'pending'``.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, Optional, Sequence

import sqlalchemy as sa
from sqlalchemy import Select, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.common.constants import LeaveStatus
from leave_ledger.common.exceptions import NotFoundException, TenantMismatchException
from leave_ledger.leave.models import DAYS, Leave, LeaveBalance, LeaveType


# ═════════════════════════════════════════════════════════════════════
# Leave types
# ═════════════════════════════════════════════════════════════════════


class LeaveTypeRepository:

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self, leave_type_id: uuid.UUID) -> Optional[LeaveType]:
        return await self.db.get(LeaveType, leave_type_id)

    async def get_for_tenant(
        self, tenant_id: uuid.UUID, leave_type_id: uuid.UUID,
    ) -> LeaveType:
        """Return the leave type or raise ``NotFound`` / ``TenantMismatch``."""
        leave_type = await self.get(leave_type_id)
        if leave_type is None:
            raise NotFoundException("LeaveType", leave_type_id)
        if leave_type.tenant_id != tenant_id:
            raise TenantMismatchException("LeaveType", leave_type_id)
        return leave_type

    async def list_for_tenant(
        self, tenant_id: uuid.UUID, *, is_active: Optional[bool] = None,
    ) -> Sequence[LeaveType]:
        query = (
            select(LeaveType)
            .where(LeaveType.tenant_id == tenant_id)
            .order_by(LeaveType.name)
        )
        if is_active is not None:
            query = query.where(LeaveType.is_active.is_(is_active))
        result = await self.db.execute(query)
        return result.scalars().all()

    async def find_active_comp_off(self, tenant_id: uuid.UUID) -> Optional[LeaveType]:
        result = await self.db.execute(
            select(LeaveType)
            .where(
                LeaveType.tenant_id == tenant_id,
                LeaveType.is_comp_off.is_(True),
                LeaveType.is_active.is_(True),
            )
            .order_by(LeaveType.created_at)
            .limit(1)
        )
        return result.scalars().first()

    async def add(self, leave_type: LeaveType) -> LeaveType:
        self.db.add(leave_type)
        await self.db.flush()
        return leave_type


# ═════════════════════════════════════════════════════════════════════
# Ledger rows
# ═════════════════════════════════════════════════════════════════════


def _floored_pending(days: Decimal) -> sa.ColumnElement:
    """``max(0, pending - days)`` evaluated by the database."""
    return sa.case(
        (LeaveBalance.pending > days, LeaveBalance.pending - days),
        else_=0,
    )


class LeaveBalanceRepository:

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    @staticmethod
    def _key(
        tenant_id: uuid.UUID,
        user_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
    ) -> list[sa.ColumnElement[bool]]:
        return [
            LeaveBalance.tenant_id == tenant_id,
            LeaveBalance.user_id == user_id,
            LeaveBalance.leave_type_id == leave_type_id,
            LeaveBalance.year == year,
        ]

    async def _select_one(
        self, where: Iterable[sa.ColumnElement[bool]], *, refresh: bool = False,
    ) -> Optional[LeaveBalance]:
        query = select(LeaveBalance).where(*where)
        if refresh:
            query = query.execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return result.scalars().first()

    async def _atomic_update(
        self,
        key: list[sa.ColumnElement[bool]],
        values: dict[str, Any],
        *,
        guard: Iterable[sa.ColumnElement[bool]] = (),
    ) -> Optional[LeaveBalance]:
        """Apply *values* in one statement; ``None`` when no row matched."""
        stmt = (
            update(LeaveBalance)
            .where(*key, *guard)
            .values(**values, version=LeaveBalance.version + 1)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        if result.rowcount == 0:
            return None
        return await self._select_one(key, refresh=True)

    # ── reads ───────────────────────────────────────────────────────

    async def get(
        self,
        tenant_id: uuid.UUID,
        user_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
    ) -> Optional[LeaveBalance]:
        return await self._select_one(self._key(tenant_id, user_id, leave_type_id, year))

    async def list_for_user(
        self, tenant_id: uuid.UUID, user_id: uuid.UUID, year: int,
    ) -> Sequence[LeaveBalance]:
        result = await self.db.execute(
            select(LeaveBalance)
            .where(
                LeaveBalance.tenant_id == tenant_id,
                LeaveBalance.user_id == user_id,
                LeaveBalance.year == year,
            )
            .order_by(LeaveBalance.leave_type_id)
        )
        return result.scalars().all()

    async def list_comp_off(self, tenant_id: uuid.UUID) -> Sequence[LeaveBalance]:
        """Comp-off ledger rows of a tenant, all years."""
        result = await self.db.execute(
            select(LeaveBalance)
            .join(LeaveType, LeaveType.id == LeaveBalance.leave_type_id)
            .where(
                LeaveBalance.tenant_id == tenant_id,
                LeaveType.is_comp_off.is_(True),
            )
            .order_by(LeaveBalance.user_id, LeaveBalance.year)
        )
        return result.scalars().all()

    # ── writes ──────────────────────────────────────────────────────

    async def add(self, balance: LeaveBalance) -> LeaveBalance:
        self.db.add(balance)
        await self.db.flush()
        return balance

    async def reserve(
        self,
        tenant_id: uuid.UUID,
        user_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
        days: Decimal,
    ) -> Optional[LeaveBalance]:
        """``remaining -= days; pending += days`` only if enough remains."""
        return await self._atomic_update(
            self._key(tenant_id, user_id, leave_type_id, year),
            {
                "remaining": LeaveBalance.remaining - days,
                "pending": LeaveBalance.pending + days,
            },
            guard=[LeaveBalance.remaining >= days],
        )

    async def commit_reservation(
        self,
        tenant_id: uuid.UUID,
        user_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
        days: Decimal,
    ) -> Optional[LeaveBalance]:
        """Pending → used. ``remaining`` was already reduced at apply time."""
        return await self._atomic_update(
            self._key(tenant_id, user_id, leave_type_id, year),
            {
                "pending": _floored_pending(days),
                "used": LeaveBalance.used + days,
            },
        )

    async def release_reservation(
        self,
        tenant_id: uuid.UUID,
        user_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
        days: Decimal,
    ) -> Optional[LeaveBalance]:
        """Pending → remaining."""
        return await self._atomic_update(
            self._key(tenant_id, user_id, leave_type_id, year),
            {
                "pending": _floored_pending(days),
                "remaining": LeaveBalance.remaining + days,
            },
        )

    async def set_allocation(
        self,
        balance: LeaveBalance,
        allocated: Decimal,
        carried_over: Optional[Decimal] = None,
    ) -> LeaveBalance:
        """Overwrite ``allocated`` (and optionally ``carried_over``).

        ``remaining`` is recomputed as ``allocated + carried_over - used``;
        in-flight reservations (``pending``) are left out of the recompute.
        """
        key = self._key(balance.tenant_id, balance.user_id, balance.leave_type_id, balance.year)
        values: dict[str, Any] = {"allocated": allocated}
        if carried_over is None:
            values["remaining"] = LeaveBalance.carried_over + allocated - LeaveBalance.used
        else:
            values["carried_over"] = carried_over
            values["remaining"] = sa.literal(allocated + carried_over, DAYS) - LeaveBalance.used
        updated = await self._atomic_update(key, values)
        if updated is None:
            raise NotFoundException("LeaveBalance", balance.id)
        return updated

    async def credit(self, balance: LeaveBalance, days: Decimal) -> LeaveBalance:
        """``allocated += days; remaining += days``."""
        key = self._key(balance.tenant_id, balance.user_id, balance.leave_type_id, balance.year)
        updated = await self._atomic_update(
            key,
            {
                "allocated": LeaveBalance.allocated + days,
                "remaining": LeaveBalance.remaining + days,
            },
        )
        if updated is None:
            raise NotFoundException("LeaveBalance", balance.id)
        return updated


# ═════════════════════════════════════════════════════════════════════
# Leave requests
# ═════════════════════════════════════════════════════════════════════


class LeaveRepository:

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self, leave_id: uuid.UUID, *, refresh: bool = False) -> Optional[Leave]:
        return await self.db.get(Leave, leave_id, populate_existing=refresh)

    async def add(self, leave: Leave) -> Leave:
        self.db.add(leave)
        await self.db.flush()
        return leave

    async def transition_from_pending(
        self,
        leave_id: uuid.UUID,
        status: LeaveStatus,
        *,
        approver_id: Optional[uuid.UUID],
        rejection_reason: Optional[str],
        reviewed_at: datetime,
    ) -> Optional[Leave]:
        """Compare-and-set ``pending → status``; ``None`` if no longer pending."""
        values: dict[str, Any] = {
            "status": status,
            "approved_by": approver_id,
            "reviewed_at": reviewed_at,
        }
        if rejection_reason:
            values["rejection_reason"] = rejection_reason
        result = await self.db.execute(
            update(Leave)
            .where(Leave.id == leave_id, Leave.status == LeaveStatus.pending)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        refreshed = await self.db.execute(
            select(Leave)
            .where(Leave.id == leave_id)
            .execution_options(populate_existing=True)
        )
        return refreshed.scalars().first()

    async def find_overlapping(
        self,
        tenant_id: uuid.UUID,
        user_id: uuid.UUID,
        start: date,
        end: date,
        statuses: Iterable[LeaveStatus] = (LeaveStatus.pending, LeaveStatus.approved),
    ) -> Sequence[Leave]:
        result = await self.db.execute(
            select(Leave).where(
                Leave.tenant_id == tenant_id,
                Leave.user_id == user_id,
                Leave.status.in_(list(statuses)),
                Leave.start_date <= end,
                Leave.end_date >= start,
            )
        )
        return result.scalars().all()

    async def list_approved_in_window(
        self,
        tenant_id: uuid.UUID,
        user_email: str,
        window_start: date,
        window_end: date,
    ) -> Sequence[Leave]:
        result = await self.db.execute(
            select(Leave)
            .where(
                Leave.tenant_id == tenant_id,
                Leave.user_email == user_email,
                Leave.status == LeaveStatus.approved,
                Leave.start_date <= window_end,
                Leave.end_date >= window_start,
            )
            .order_by(Leave.start_date)
        )
        return result.scalars().all()

    @staticmethod
    def build_query(
        tenant_id: uuid.UUID,
        *,
        user_id: Optional[uuid.UUID] = None,
        status: Optional[LeaveStatus] = None,
        leave_type_id: Optional[uuid.UUID] = None,
    ) -> Select:
        query = (
            select(Leave)
            .where(Leave.tenant_id == tenant_id)
            .order_by(Leave.start_date.desc())
        )
        if user_id is not None:
            query = query.where(Leave.user_id == user_id)
        if status is not None:
            query = query.where(Leave.status == status)
        if leave_type_id is not None:
            query = query.where(Leave.leave_type_id == leave_type_id)
        return query

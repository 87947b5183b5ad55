"""Comp-off service — overtime detection, manual credits, usage reconciliation.

Overtime rules (per Monday-start week):
  - each day over 8h contributes ``(hours - 8) / 8`` days
  - a week over 40h additionally contributes ``(total - 40) / 8`` days
  - the sum is rounded half-up to the nearest 0.5 day
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.common.constants import (
    HOURS_PER_DAY,
    SYSTEM_ACTOR,
    WEEKLY_HOURS_THRESHOLD,
)
from leave_ledger.common.dates import end_of_week, format_display_date, start_of_week
from leave_ledger.comp_off.models import CompOffCredit
from leave_ledger.comp_off.repository import CompOffCreditRepository
from leave_ledger.comp_off.schemas import CompOffCreditCreate, OvertimeResult
from leave_ledger.core.models import utcnow
from leave_ledger.core.repository import UserRepository
from leave_ledger.leave.models import LeaveType
from leave_ledger.leave.repository import LeaveBalanceRepository, LeaveTypeRepository
from leave_ledger.leave.service import BalanceStore
from leave_ledger.timesheets.models import Timesheet
from leave_ledger.timesheets.repository import TimesheetRepository

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
DEFAULT_COMP_OFF_TYPE_NAME = "Compensatory Off"


def overtime_days(entries: Iterable[Timesheet]) -> Decimal:
    """Unrounded overtime of one week, in days."""
    daily: dict[date, Decimal] = defaultdict(lambda: ZERO)
    weekly = ZERO
    for entry in entries:
        hours = entry.total_hours
        daily[entry.date] += hours
        weekly += hours

    total = ZERO
    for hours in daily.values():
        if hours > HOURS_PER_DAY:
            total += (hours - HOURS_PER_DAY) / HOURS_PER_DAY
    if weekly > WEEKLY_HOURS_THRESHOLD:
        total += (weekly - WEEKLY_HOURS_THRESHOLD) / HOURS_PER_DAY
    return total


def round_to_half_day(days: Decimal) -> Decimal:
    return (days * 2).quantize(Decimal("1"), rounding=ROUND_HALF_UP) / 2


# ═════════════════════════════════════════════════════════════════════
# Overtime engine
# ═════════════════════════════════════════════════════════════════════


class OvertimeCompOffEngine:

    def __init__(
        self,
        timesheets: TimesheetRepository,
        credits: CompOffCreditRepository,
        users: UserRepository,
        leave_types: LeaveTypeRepository,
    ) -> None:
        self.timesheets = timesheets
        self.credits = credits
        self.users = users
        self.leave_types = leave_types

    @classmethod
    def for_session(cls, db: AsyncSession) -> "OvertimeCompOffEngine":
        return cls(
            TimesheetRepository(db),
            CompOffCreditRepository(db),
            UserRepository(db),
            LeaveTypeRepository(db),
        )

    async def process(
        self, tenant_id: uuid.UUID, user_email: str, on_date: date,
    ) -> OvertimeResult:
        """Credit comp-off for the week containing *on_date*, at most once."""
        week_start = start_of_week(on_date)
        week_end = end_of_week(on_date)

        entries = await self.timesheets.list_for_user_between(
            tenant_id, user_email, week_start, week_end,
        )
        days = round_to_half_day(overtime_days(entries))
        if days <= 0:
            return OvertimeResult(credited=False, days=0)

        user = await self.users.find_by_email(tenant_id, user_email)
        if user is None:
            logger.info("Overtime for unknown user %s in tenant %s ignored", user_email, tenant_id)
            return OvertimeResult(credited=False, days=0)

        if await self.credits.find_for_week(tenant_id, user.id, week_start) is not None:
            return OvertimeResult(credited=False, days=0)

        comp_off_type = await self.leave_types.find_active_comp_off(tenant_id)
        if comp_off_type is None:
            logger.info("Tenant %s has no active comp-off leave type; overtime not credited", tenant_id)
            return OvertimeResult(credited=False, days=0)

        await self.credits.add(
            CompOffCredit(
                tenant_id=tenant_id,
                user_id=user.id,
                user_email=user_email,
                leave_type_id=comp_off_type.id,
                week_start=week_start,
                credited_days=days,
                used_days=ZERO,
                remaining_days=days,
                reason=(
                    "Auto-credited for overtime work "
                    f"(Week of {format_display_date(week_start)})"
                ),
                credited_by=SYSTEM_ACTOR,
                # TODO: confirm expiry policy with HR; credits currently lapse with their own week
                expires_at=week_end,
                is_expired=False,
            )
        )
        logger.info("Auto-credited %s comp-off day(s) to %s for week of %s", days, user_email, week_start)
        return OvertimeResult(credited=True, days=float(days))


# ═════════════════════════════════════════════════════════════════════
# Admin operations
# ═════════════════════════════════════════════════════════════════════


class CompOffService:

    def __init__(
        self,
        store: BalanceStore,
        credits: CompOffCreditRepository,
        users: UserRepository,
        leave_types: LeaveTypeRepository,
    ) -> None:
        self.store = store
        self.credits = credits
        self.users = users
        self.leave_types = leave_types

    @classmethod
    def for_session(cls, db: AsyncSession) -> "CompOffService":
        users = UserRepository(db)
        leave_types = LeaveTypeRepository(db)
        return cls(
            BalanceStore(LeaveBalanceRepository(db), users, leave_types),
            CompOffCreditRepository(db),
            users,
            leave_types,
        )

    async def _comp_off_type(self, tenant_id: uuid.UUID) -> LeaveType:
        leave_type = await self.leave_types.find_active_comp_off(tenant_id)
        if leave_type is not None:
            return leave_type
        logger.info("Creating default comp-off leave type for tenant %s", tenant_id)
        return await self.leave_types.add(
            LeaveType(
                tenant_id=tenant_id,
                name=DEFAULT_COMP_OFF_TYPE_NAME,
                description="Leave granted for working on holidays or weekends",
                annual_allowance=ZERO,
                carry_forward=False,
                is_comp_off=True,
                is_paid=True,
                is_active=True,
            )
        )

    async def credit_manual(self, body: CompOffCreditCreate) -> CompOffCredit:
        """Record a manual credit and add it to this year's comp-off balance."""
        user = await self.users.get_for_tenant(body.tenant_id, body.user_id)
        comp_off_type = await self._comp_off_type(body.tenant_id)

        credit = await self.credits.add(
            CompOffCredit(
                tenant_id=body.tenant_id,
                user_id=user.id,
                user_email=user.email,
                leave_type_id=comp_off_type.id,
                week_start=None,
                credited_days=body.credited_days,
                used_days=ZERO,
                remaining_days=body.credited_days,
                reason=body.reason,
                credited_by=body.credited_by,
                expires_at=body.expires_at,
                is_expired=False,
            )
        )

        balance = await self.store.find_or_create(
            body.tenant_id, user.id, comp_off_type.id, utcnow().year,
            user_email=user.email,
        )
        await self.store.credit(balance, body.credited_days)
        logger.info(
            "%s credited %s comp-off day(s) to %s", body.credited_by, body.credited_days, user.email,
        )
        return credit

    async def reconcile_usage(self, tenant_id: uuid.UUID) -> int:
        """Spread each user's comp-off ``used`` over their credits, oldest expiry first.

        Returns the number of credits whose ``used_days`` changed.
        """
        used_by_user: dict[uuid.UUID, Decimal] = defaultdict(lambda: ZERO)
        for balance in await self.store.balances.list_comp_off(tenant_id):
            used_by_user[balance.user_id] += balance.used or ZERO

        updated = 0
        for user_id, used in used_by_user.items():
            to_assign = used
            for credit in await self.credits.list_for_user_by_expiry(tenant_id, user_id):
                new_used = min(credit.credited_days, to_assign) if to_assign > 0 else ZERO
                to_assign -= new_used
                if credit.used_days != new_used:
                    credit.used_days = new_used
                    credit.remaining_days = credit.credited_days - new_used
                    updated += 1

        await self.credits.db.flush()
        logger.info("Reconciled comp-off usage for tenant %s: %s credit(s) updated", tenant_id, updated)
        return updated

    async def list_credits(
        self, tenant_id: uuid.UUID, *, user_id: Optional[uuid.UUID] = None,
    ) -> Sequence[CompOffCredit]:
        return await self.credits.list_for_tenant(tenant_id, user_id=user_id)

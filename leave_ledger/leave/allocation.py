"""Annual leave allocation — yearly allowance plus capped carry-forward.

Runs for one tenant and one target year. Every non-comp-off leave type is
applied to every user of the tenant; re-running for the same year rewrites
the same rows (``used`` is preserved, ``remaining`` recomputed).
"""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.common.constants import MAX_LEDGER_YEAR, MIN_LEDGER_YEAR
from leave_ledger.common.exceptions import ValidationException
from leave_ledger.core.repository import UserRepository
from leave_ledger.leave.models import LeaveType
from leave_ledger.leave.repository import LeaveBalanceRepository, LeaveTypeRepository
from leave_ledger.leave.schemas import AllocationStats, AnnualAllocationResponse
from leave_ledger.leave.service import BalanceStore

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def carry_forward_amount(leave_type: LeaveType, prior_remaining: Decimal) -> Decimal:
    """Days carried from the prior year's ``remaining`` under the type's cap.

    ``max_carry_forward`` of ``None`` means uncapped.
    """
    if not leave_type.carry_forward or prior_remaining <= 0:
        return ZERO
    if leave_type.max_carry_forward is not None:
        return min(prior_remaining, leave_type.max_carry_forward)
    return prior_remaining


class AnnualAllocationJob:

    def __init__(
        self,
        store: BalanceStore,
        users: UserRepository,
        leave_types: LeaveTypeRepository,
    ) -> None:
        self.store = store
        self.users = users
        self.leave_types = leave_types

    @classmethod
    def for_session(cls, db: AsyncSession) -> "AnnualAllocationJob":
        users = UserRepository(db)
        leave_types = LeaveTypeRepository(db)
        return cls(
            BalanceStore(LeaveBalanceRepository(db), users, leave_types),
            users,
            leave_types,
        )

    async def run(
        self, tenant_id: uuid.UUID, year: int, *, dry_run: bool = False,
    ) -> AnnualAllocationResponse:
        if not MIN_LEDGER_YEAR <= year <= MAX_LEDGER_YEAR:
            raise ValidationException(
                {"year": [f"Year must be between {MIN_LEDGER_YEAR} and {MAX_LEDGER_YEAR}."]}
            )

        users = await self.users.list_for_tenant(tenant_id)
        leave_types = await self.leave_types.list_for_tenant(tenant_id)
        if not users or not leave_types:
            return AnnualAllocationResponse(
                success=False,
                year=year,
                dry_run=dry_run,
                message="No users or leave types found for this tenant.",
                results=[],
            )

        stats = AllocationStats(total_users=len(users))

        for user in users:
            for leave_type in leave_types:
                if leave_type.is_comp_off:
                    continue

                allowance = leave_type.annual_allowance or ZERO
                if allowance == 0 and not leave_type.carry_forward:
                    continue

                carried = ZERO
                if leave_type.carry_forward:
                    prior = await self.store.get(tenant_id, user.id, leave_type.id, year - 1)
                    if prior is not None:
                        carried = carry_forward_amount(leave_type, prior.remaining)
                    if carried > 0:
                        stats.carried_forward += 1

                if dry_run:
                    existing = await self.store.get(tenant_id, user.id, leave_type.id, year)
                    if existing is None:
                        stats.created += 1
                    else:
                        stats.updated += 1
                    continue

                _, created = await self.store.upsert_allocation(
                    tenant_id, user.id, leave_type.id, year,
                    allowance, carried,
                    user_email=user.email,
                )
                if created:
                    stats.created += 1
                else:
                    stats.updated += 1

        logger.info(
            "Annual allocation %s for tenant %s year %s: created=%s updated=%s "
            "carried_forward=%s users=%s",
            "dry run" if dry_run else "run", tenant_id, year,
            stats.created, stats.updated, stats.carried_forward, stats.total_users,
        )
        return AnnualAllocationResponse(
            success=True, year=year, dry_run=dry_run, results=[stats],
        )

"""Leave service layer — balance store and the reservation protocol.

Business logic:
  - Ledger rows are read and written only through ``BalanceStore``
  - Apply reserves days (``remaining -> pending``) in the request transaction
  - Approval commits the reservation (``pending -> used``)
  - Rejection / cancellation releases it (``pending -> remaining``)
  - Status changes enqueue email + in-app messages; enqueue failures never
    roll back the ledger
"""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.common.constants import (
    HALF_DAY,
    MAX_LEDGER_YEAR,
    MIN_LEDGER_YEAR,
    TERMINAL_LEAVE_STATUSES,
    LeaveDuration,
    LeaveStatus,
)
from leave_ledger.common.dates import inclusive_days
from leave_ledger.common.exceptions import (
    AlreadyProcessedException,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from leave_ledger.common.pagination import PaginatedResponse, PaginationParams, paginate
from leave_ledger.core.models import utcnow
from leave_ledger.core.repository import UserRepository
from leave_ledger.leave.models import Leave, LeaveBalance, LeaveType
from leave_ledger.leave.repository import (
    LeaveBalanceRepository,
    LeaveRepository,
    LeaveTypeRepository,
)
from leave_ledger.leave.schemas import (
    LeaveApplyRequest,
    LeaveBalanceOut,
    LeaveOut,
    LeaveStatusUpdateResponse,
    LeaveTypeCreate,
)
from leave_ledger.notifications.service import LeaveStatusNotifier

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


# ═════════════════════════════════════════════════════════════════════
# BalanceStore
# ═════════════════════════════════════════════════════════════════════


class BalanceStore:
    """Keyed access to ledger rows plus the atomic reservation mutations."""

    def __init__(
        self,
        balances: LeaveBalanceRepository,
        users: UserRepository,
        leave_types: LeaveTypeRepository,
    ) -> None:
        self.balances = balances
        self.users = users
        self.leave_types = leave_types

    @classmethod
    def for_session(cls, db: AsyncSession) -> "BalanceStore":
        return cls(
            LeaveBalanceRepository(db),
            UserRepository(db),
            LeaveTypeRepository(db),
        )

    @staticmethod
    def _check(balance: Optional[LeaveBalance], operation: str) -> Optional[LeaveBalance]:
        if balance is not None and not balance.is_consistent:
            logger.warning(
                "Ledger drift after %s on balance %s: remaining=%s expected=%s",
                operation, balance.id, balance.remaining, balance.expected_remaining,
            )
        return balance

    # ── reads ───────────────────────────────────────────────────────

    async def get(
        self,
        tenant_id: uuid.UUID,
        user_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
    ) -> Optional[LeaveBalance]:
        return await self.balances.get(tenant_id, user_id, leave_type_id, year)

    async def list_balances(
        self, tenant_id: uuid.UUID, user_id: uuid.UUID, year: int,
    ) -> Sequence[LeaveBalance]:
        await self.users.get_for_tenant(tenant_id, user_id)
        return await self.balances.list_for_user(tenant_id, user_id, year)

    # ── writes ──────────────────────────────────────────────────────

    async def find_or_create(
        self,
        tenant_id: uuid.UUID,
        user_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
        *,
        user_email: Optional[str] = None,
    ) -> LeaveBalance:
        """Existing row, or a fresh zero row."""
        balance = await self.get(tenant_id, user_id, leave_type_id, year)
        if balance is not None:
            return balance
        return await self.balances.add(
            LeaveBalance(
                tenant_id=tenant_id,
                user_id=user_id,
                user_email=user_email,
                leave_type_id=leave_type_id,
                year=year,
                allocated=ZERO,
                carried_over=ZERO,
                used=ZERO,
                pending=ZERO,
                remaining=ZERO,
                version=1,
            )
        )

    async def upsert_allocation(
        self,
        tenant_id: uuid.UUID,
        user_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
        allocated: Decimal,
        carried_over: Decimal,
        *,
        user_email: Optional[str] = None,
    ) -> tuple[LeaveBalance, bool]:
        """Annual-job write. Returns ``(row, created)``.

        An existing row keeps its ``used``; ``remaining`` is recomputed as
        ``allocated + carried_over - used``.
        """
        existing = await self.get(tenant_id, user_id, leave_type_id, year)
        if existing is not None:
            balance = await self.balances.set_allocation(existing, allocated, carried_over)
            return self._check(balance, "allocation"), False

        balance = await self.balances.add(
            LeaveBalance(
                tenant_id=tenant_id,
                user_id=user_id,
                user_email=user_email,
                leave_type_id=leave_type_id,
                year=year,
                allocated=allocated,
                carried_over=carried_over,
                used=ZERO,
                pending=ZERO,
                remaining=allocated + carried_over,
                version=1,
            )
        )
        return balance, True

    async def reserve(
        self,
        tenant_id: uuid.UUID,
        user_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
        days: Decimal,
    ) -> Optional[LeaveBalance]:
        """``None`` when the row is missing or has fewer than *days* left."""
        balance = await self.balances.reserve(tenant_id, user_id, leave_type_id, year, days)
        return self._check(balance, "reserve")

    async def commit(
        self,
        tenant_id: uuid.UUID,
        user_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
        days: Decimal,
    ) -> Optional[LeaveBalance]:
        balance = await self.balances.commit_reservation(
            tenant_id, user_id, leave_type_id, year, days,
        )
        return self._check(balance, "commit")

    async def release(
        self,
        tenant_id: uuid.UUID,
        user_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
        days: Decimal,
    ) -> Optional[LeaveBalance]:
        balance = await self.balances.release_reservation(
            tenant_id, user_id, leave_type_id, year, days,
        )
        return self._check(balance, "release")

    async def credit(self, balance: LeaveBalance, days: Decimal) -> LeaveBalance:
        """Grant extra days on top of the allocation (comp-off)."""
        return self._check(await self.balances.credit(balance, days), "credit")

    async def allocate_individual_leave(
        self,
        tenant_id: uuid.UUID,
        user_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        days: Decimal,
        year: int,
    ) -> LeaveBalance:
        """Set one user's allocation for a year.

        Pending reservations are left out of the ``remaining`` recompute.
        """
        errors: dict[str, list[str]] = {}
        if days is None or days < 0:
            errors["days"] = ["Allocated days must be zero or greater."]
        if not MIN_LEDGER_YEAR <= year <= MAX_LEDGER_YEAR:
            errors["year"] = [f"Year must be between {MIN_LEDGER_YEAR} and {MAX_LEDGER_YEAR}."]
        if errors:
            raise ValidationException(errors)

        user = await self.users.get_for_tenant(tenant_id, user_id)
        await self.leave_types.get_for_tenant(tenant_id, leave_type_id)

        existing = await self.get(tenant_id, user_id, leave_type_id, year)
        if existing is not None:
            balance = await self.balances.set_allocation(existing, days)
        else:
            balance = await self.balances.add(
                LeaveBalance(
                    tenant_id=tenant_id,
                    user_id=user_id,
                    user_email=user.email,
                    leave_type_id=leave_type_id,
                    year=year,
                    allocated=days,
                    carried_over=ZERO,
                    used=ZERO,
                    pending=ZERO,
                    remaining=days,
                    version=1,
                )
            )
        logger.info(
            "Allocated %s day(s) of leave type %s to user %s for %s",
            days, leave_type_id, user_id, year,
        )
        return self._check(balance, "individual allocation")


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Leave types, applications and status transitions."""

    def __init__(
        self,
        store: BalanceStore,
        leaves: LeaveRepository,
        users: UserRepository,
        leave_types: LeaveTypeRepository,
        notifier: LeaveStatusNotifier,
    ) -> None:
        self.store = store
        self.leaves = leaves
        self.users = users
        self.leave_types = leave_types
        self.notifier = notifier

    @classmethod
    def for_session(cls, db: AsyncSession) -> "LeaveService":
        users = UserRepository(db)
        leave_types = LeaveTypeRepository(db)
        return cls(
            BalanceStore(LeaveBalanceRepository(db), users, leave_types),
            LeaveRepository(db),
            users,
            leave_types,
            LeaveStatusNotifier.for_session(db),
        )

    # ─────────────────────────────────────────────────────────────────
    # Leave types
    # ─────────────────────────────────────────────────────────────────

    async def create_leave_type(self, body: LeaveTypeCreate) -> LeaveType:
        leave_type = await self.leave_types.add(LeaveType(**body.model_dump()))
        logger.info("Created leave type %s (%s) for tenant %s", leave_type.name, leave_type.id, leave_type.tenant_id)
        return leave_type

    async def list_leave_types(
        self, tenant_id: uuid.UUID, *, is_active: Optional[bool] = None,
    ) -> Sequence[LeaveType]:
        return await self.leave_types.list_for_tenant(tenant_id, is_active=is_active)

    # ─────────────────────────────────────────────────────────────────
    # Apply
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def calculate_total_days(body: LeaveApplyRequest) -> Decimal:
        if body.duration == LeaveDuration.half_day:
            return HALF_DAY
        return Decimal(inclusive_days(body.start_date, body.end_date))

    async def apply_leave(self, body: LeaveApplyRequest) -> Leave:
        """Validate, reserve the days and create the pending request."""
        user = await self.users.get_for_tenant(body.tenant_id, body.user_id)
        leave_type = await self.leave_types.get_for_tenant(body.tenant_id, body.leave_type_id)
        if not leave_type.is_active:
            raise ValidationException(
                {"leave_type_id": [f"Leave type '{leave_type.name}' is not active."]}
            )

        total_days = self.calculate_total_days(body)

        overlapping = await self.leaves.find_overlapping(
            body.tenant_id, body.user_id, body.start_date, body.end_date,
        )
        if overlapping:
            raise ValidationException(
                {"start_date": ["Overlaps an existing pending or approved leave request."]}
            )

        year = body.start_date.year
        balance = await self.store.get(body.tenant_id, body.user_id, body.leave_type_id, year)
        if balance is None:
            raise ValidationException(
                {"leave_type_id": [f"No {leave_type.name} allocation found for {year}."]}
            )
        insufficient = {
            "total_days": [
                f"Insufficient balance: {balance.remaining} day(s) remaining, "
                f"{total_days} requested."
            ]
        }
        if balance.remaining < total_days:
            raise ValidationException(insufficient)

        reserved = await self.store.reserve(
            body.tenant_id, body.user_id, body.leave_type_id, year, total_days,
        )
        if reserved is None:
            # lost a race with a concurrent reservation
            raise ValidationException(insufficient)

        leave = await self.leaves.add(
            Leave(
                tenant_id=body.tenant_id,
                user_id=body.user_id,
                user_email=user.email,
                leave_type_id=body.leave_type_id,
                start_date=body.start_date,
                end_date=body.end_date,
                total_days=total_days,
                duration=body.duration,
                reason=body.reason,
                status=LeaveStatus.pending,
            )
        )
        logger.info(
            "Leave %s applied by %s: %s day(s) of %s, %s..%s",
            leave.id, user.email, total_days, leave_type.name,
            body.start_date, body.end_date,
        )
        return leave

    # ─────────────────────────────────────────────────────────────────
    # Transitions
    # ─────────────────────────────────────────────────────────────────

    async def update_leave_status(
        self,
        leave_id: uuid.UUID,
        status: LeaveStatus,
        *,
        approver_id: Optional[uuid.UUID] = None,
        rejection_reason: Optional[str] = None,
    ) -> LeaveStatusUpdateResponse:
        """Move a pending request to a terminal state and settle the ledger."""
        if status not in TERMINAL_LEAVE_STATUSES:
            raise ValidationException(
                {"status": ["Status must be one of approved, rejected or cancelled."]}
            )

        leave = await self.leaves.get(leave_id)
        if leave is None:
            raise NotFoundException("Leave", leave_id)
        if leave.status != LeaveStatus.pending:
            raise AlreadyProcessedException(leave_id, LeaveStatus(leave.status).value)

        updated = await self.leaves.transition_from_pending(
            leave_id,
            status,
            approver_id=approver_id,
            rejection_reason=rejection_reason,
            reviewed_at=utcnow(),
        )
        if updated is None:
            current = await self.leaves.get(leave_id, refresh=True)
            raise AlreadyProcessedException(leave_id, LeaveStatus(current.status).value)
        leave = updated

        settle = self.store.commit if status == LeaveStatus.approved else self.store.release
        balance = await settle(
            leave.tenant_id, leave.user_id, leave.leave_type_id,
            leave.ledger_year, leave.total_days,
        )
        if balance is None:
            logger.warning(
                "Leave %s moved to %s but no ledger row exists for %s/%s/%s",
                leave.id, status.value, leave.user_id, leave.leave_type_id, leave.ledger_year,
            )
        else:
            logger.info(
                "Leave %s -> %s; balance %s remaining=%s pending=%s used=%s",
                leave.id, status.value, balance.id,
                balance.remaining, balance.pending, balance.used,
            )

        await self._enqueue_notifications(leave, approver_id, rejection_reason)

        return LeaveStatusUpdateResponse(
            success=True,
            leave=LeaveOut.model_validate(leave),
            balance=LeaveBalanceOut.model_validate(balance) if balance else None,
        )

    async def cancel_leave(
        self,
        leave_id: uuid.UUID,
        user_id: uuid.UUID,
        reason: Optional[str] = None,
    ) -> LeaveStatusUpdateResponse:
        """Owner cancellation of a pending request."""
        leave = await self.leaves.get(leave_id)
        if leave is None:
            raise NotFoundException("Leave", leave_id)
        if leave.user_id != user_id:
            raise ForbiddenException("Only the requester can cancel this leave request.")
        return await self.update_leave_status(
            leave_id, LeaveStatus.cancelled, rejection_reason=reason,
        )

    async def _enqueue_notifications(
        self,
        leave: Leave,
        approver_id: Optional[uuid.UUID],
        rejection_reason: Optional[str],
    ) -> None:
        # Savepoint: a failed enqueue rolls back the outbox rows only.
        leave_id = leave.id
        try:
            async with self.leaves.db.begin_nested():
                leave_type = await self.leave_types.get(leave.leave_type_id)
                user = await self.users.get(leave.user_id)
                approver = await self.users.get(approver_id) if approver_id else None
                await self.notifier.enqueue_status_change(
                    leave,
                    leave_type_name=leave_type.name if leave_type else None,
                    user=user,
                    approver=approver,
                    rejection_reason=rejection_reason,
                )
        except Exception:
            logger.exception("Failed to enqueue notifications for leave %s", leave_id)

    # ─────────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────────

    async def list_leaves(
        self,
        tenant_id: uuid.UUID,
        params: PaginationParams,
        *,
        user_id: Optional[uuid.UUID] = None,
        status: Optional[LeaveStatus] = None,
        leave_type_id: Optional[uuid.UUID] = None,
    ) -> PaginatedResponse:
        query = LeaveRepository.build_query(
            tenant_id, user_id=user_id, status=status, leave_type_id=leave_type_id,
        )
        return await paginate(
            self.leaves.db, query, params, model=Leave, transform=LeaveOut.model_validate,
        )

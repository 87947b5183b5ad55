"""Leave ORM models: LeaveType, LeaveBalance (ledger row), Leave (request)."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from leave_ledger.common.constants import LeaveDuration, LeaveStatus
from leave_ledger.core.models import utcnow
from leave_ledger.database import Base

DAYS = sa.Numeric(6, 2)


class LeaveType(Base):
    """Tenant leave policy. Read-only to the engine."""

    __tablename__ = "leave_types"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("tenants.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(sa.Text)
    annual_allowance: Mapped[Decimal] = mapped_column(
        DAYS, default=Decimal("0"), server_default=sa.text("0")
    )
    carry_forward: Mapped[bool] = mapped_column(
        sa.Boolean, default=False, server_default=sa.text("FALSE")
    )
    # NULL = uncapped; 0 = nothing carries over
    max_carry_forward: Mapped[Optional[Decimal]] = mapped_column(DAYS)
    is_comp_off: Mapped[bool] = mapped_column(
        sa.Boolean, default=False, server_default=sa.text("FALSE")
    )
    is_paid: Mapped[bool] = mapped_column(
        sa.Boolean, default=True, server_default=sa.text("TRUE")
    )
    is_active: Mapped[bool] = mapped_column(
        sa.Boolean, default=True, server_default=sa.text("TRUE")
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        server_default=sa.func.now(),
    )


class LeaveBalance(Base):
    """One ledger row per (tenant, user, leave type, year).

    ``remaining == allocated + carried_over - used - pending`` holds after
    every reservation mutation. ``version`` is bumped by every write.
    """

    __tablename__ = "leave_balances"
    __table_args__ = (
        sa.UniqueConstraint(
            "tenant_id", "user_id", "leave_type_id", "year", name="uq_leave_balance"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("tenants.id"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False
    )
    user_email: Mapped[Optional[str]] = mapped_column(sa.String(255))
    leave_type_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_types.id"), nullable=False
    )
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    allocated: Mapped[Decimal] = mapped_column(
        DAYS, default=Decimal("0"), server_default=sa.text("0")
    )
    carried_over: Mapped[Decimal] = mapped_column(
        DAYS, default=Decimal("0"), server_default=sa.text("0")
    )
    used: Mapped[Decimal] = mapped_column(
        DAYS, default=Decimal("0"), server_default=sa.text("0")
    )
    pending: Mapped[Decimal] = mapped_column(
        DAYS, default=Decimal("0"), server_default=sa.text("0")
    )
    remaining: Mapped[Decimal] = mapped_column(
        DAYS, default=Decimal("0"), server_default=sa.text("0")
    )
    version: Mapped[int] = mapped_column(
        sa.Integer, default=1, server_default=sa.text("1"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        server_default=sa.func.now(),
    )

    @property
    def expected_remaining(self) -> Decimal:
        return self.allocated + self.carried_over - self.used - self.pending

    @property
    def is_consistent(self) -> bool:
        return self.remaining == self.expected_remaining


class Leave(Base):
    """A leave request. Leaves ``pending`` exactly once."""

    __tablename__ = "leaves"
    __table_args__ = (
        sa.Index("ix_leaves_tenant_user_status", "tenant_id", "user_id", "status"),
        sa.Index("ix_leaves_tenant_email_dates", "tenant_id", "user_email", "start_date", "end_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("tenants.id"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False
    )
    user_email: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    leave_type_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_types.id"), nullable=False
    )
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    total_days: Mapped[Decimal] = mapped_column(DAYS, nullable=False)
    duration: Mapped[LeaveDuration] = mapped_column(
        sa.Enum(LeaveDuration, name="leave_duration"),
        default=LeaveDuration.full_day,
        server_default=LeaveDuration.full_day.value,
    )
    reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    status: Mapped[LeaveStatus] = mapped_column(
        sa.Enum(LeaveStatus, name="leave_status"),
        default=LeaveStatus.pending,
        server_default=LeaveStatus.pending.value,
    )
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    rejection_reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        server_default=sa.func.now(),
    )

    @property
    def ledger_year(self) -> int:
        return self.start_date.year

"""Comp-off credit ORM model."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from leave_ledger.core.models import utcnow
from leave_ledger.database import Base
from leave_ledger.leave.models import DAYS


class CompOffCredit(Base):
    """Days of compensatory time off granted to one user.

    ``week_start`` is set for overtime credits and is the dedup key: one
    automatic credit per user per week. Manual credits leave it NULL.
    """

    __tablename__ = "comp_off_credits"
    __table_args__ = (
        sa.UniqueConstraint(
            "tenant_id", "user_id", "week_start", name="uq_comp_off_credit_week"
        ),
        sa.Index("ix_comp_off_credits_tenant_user", "tenant_id", "user_id"),
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
    leave_type_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_types.id")
    )
    week_start: Mapped[Optional[date]] = mapped_column(sa.Date)
    credited_days: Mapped[Decimal] = mapped_column(DAYS, nullable=False)
    used_days: Mapped[Decimal] = mapped_column(
        DAYS, default=Decimal("0"), server_default=sa.text("0")
    )
    remaining_days: Mapped[Decimal] = mapped_column(DAYS, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    credited_by: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    expires_at: Mapped[Optional[date]] = mapped_column(sa.Date)
    is_expired: Mapped[bool] = mapped_column(
        sa.Boolean, default=False, server_default=sa.text("FALSE")
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, server_default=sa.func.now()
    )

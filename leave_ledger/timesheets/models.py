"""Timesheet ORM model — hours logged per user per day, read by the overtime engine."""

from __future__ import annotations

import datetime as dt
import uuid
from decimal import Decimal

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from leave_ledger.core.models import utcnow
from leave_ledger.database import Base


class Timesheet(Base):
    __tablename__ = "timesheets"
    __table_args__ = (
        sa.Index("ix_timesheets_tenant_email_date", "tenant_id", "user_email", "date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("tenants.id"), nullable=False
    )
    user_email: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    date: Mapped[dt.date] = mapped_column(sa.Date, nullable=False)
    hours: Mapped[Decimal] = mapped_column(
        sa.Numeric(5, 2), default=Decimal("0"), server_default=sa.text("0")
    )
    minutes: Mapped[int] = mapped_column(
        sa.Integer, default=0, server_default=sa.text("0")
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, server_default=sa.func.now()
    )

    @property
    def total_hours(self) -> Decimal:
        return Decimal(self.hours or 0) + Decimal(self.minutes or 0) / Decimal(60)

"""Comp-off Pydantic v2 schemas."""

from __future__ import annotations

import datetime as dt
import uuid
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class OvertimeRequest(BaseModel):
    """Trigger sent when a timesheet is created or updated."""

    tenant_id: uuid.UUID
    user_email: str = Field(..., min_length=3, max_length=255)
    date: dt.date


class OvertimeResult(BaseModel):
    credited: bool
    days: float = 0


class CompOffCreditCreate(BaseModel):
    """Manual credit granted by an administrator."""

    tenant_id: uuid.UUID
    user_id: uuid.UUID
    credited_days: Decimal = Field(..., gt=0, le=366)
    reason: Optional[str] = Field(None, max_length=1000)
    expires_at: Optional[dt.date] = None
    credited_by: str = Field(..., min_length=1, max_length=255)


class CompOffCreditOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    tenant_id: uuid.UUID
    user_id: uuid.UUID
    user_email: str
    leave_type_id: Optional[uuid.UUID] = None
    week_start: Optional[dt.date] = None
    credited_days: Decimal
    used_days: Decimal
    remaining_days: Decimal
    reason: Optional[str] = None
    credited_by: str
    expires_at: Optional[dt.date] = None
    is_expired: bool
    created_at: Optional[dt.datetime] = None


class ReconcileRequest(BaseModel):
    tenant_id: uuid.UUID


class ReconcileResult(BaseModel):
    success: bool = True
    updated: int

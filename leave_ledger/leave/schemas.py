"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Request  → request bodies (write)
  - *Out / *Response    → response bodies (read)
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)

from leave_ledger.common.constants import (
    MAX_LEDGER_YEAR,
    MIN_LEDGER_YEAR,
    LeaveDuration,
    LeaveStatus,
)


# ═════════════════════════════════════════════════════════════════════
# Leave Type
# ═════════════════════════════════════════════════════════════════════


class LeaveTypeCreate(BaseModel):
    """Leave policy payload.

    Older clients send the yearly allowance as ``days_allowed``; it is folded
    into ``annual_allowance`` here so nothing downstream sees the alias.
    """

    tenant_id: uuid.UUID
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    annual_allowance: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        validation_alias=AliasChoices("annual_allowance", "days_allowed"),
    )
    carry_forward: bool = False
    max_carry_forward: Optional[Decimal] = Field(default=None, ge=0)
    is_comp_off: bool = False
    is_paid: bool = True
    is_active: bool = True


class LeaveTypeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    tenant_id: uuid.UUID
    name: str
    description: Optional[str] = None
    annual_allowance: Decimal
    carry_forward: bool
    max_carry_forward: Optional[Decimal] = None
    is_comp_off: bool
    is_paid: bool
    is_active: bool


# ═════════════════════════════════════════════════════════════════════
# Leave Balance
# ═════════════════════════════════════════════════════════════════════


class LeaveBalanceOut(BaseModel):
    """One ledger row."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    tenant_id: uuid.UUID
    user_id: uuid.UUID
    leave_type_id: uuid.UUID
    year: int
    allocated: Decimal
    carried_over: Decimal
    used: Decimal
    pending: Decimal
    remaining: Decimal
    version: int
    updated_at: Optional[datetime] = None


class IndividualAllocationRequest(BaseModel):
    """Payload for ``allocateIndividualLeave``."""

    tenant_id: uuid.UUID
    user_id: uuid.UUID
    leave_type_id: uuid.UUID
    days: Decimal = Field(..., ge=0, le=366)
    year: int = Field(..., ge=MIN_LEDGER_YEAR, le=MAX_LEDGER_YEAR)


class IndividualAllocationResponse(BaseModel):
    success: bool = True
    balance: LeaveBalanceOut


# ═════════════════════════════════════════════════════════════════════
# Annual Allocation
# ═════════════════════════════════════════════════════════════════════


class AnnualAllocationRequest(BaseModel):
    tenant_id: uuid.UUID
    year: int = Field(..., ge=MIN_LEDGER_YEAR, le=MAX_LEDGER_YEAR)
    dry_run: bool = False


class AllocationStats(BaseModel):
    created: int = 0
    updated: int = 0
    carried_forward: int = 0
    total_users: int = 0


class AnnualAllocationResponse(BaseModel):
    success: bool
    year: int
    message: Optional[str] = None
    dry_run: bool = False
    results: list[AllocationStats] = Field(default_factory=list)


# ═════════════════════════════════════════════════════════════════════
# Leave Request
# ═════════════════════════════════════════════════════════════════════


class LeaveApplyRequest(BaseModel):
    """Payload for applying a leave request."""

    tenant_id: uuid.UUID
    user_id: uuid.UUID
    leave_type_id: uuid.UUID
    start_date: date = Field(..., description="Leave start date (inclusive)")
    end_date: date = Field(..., description="Leave end date (inclusive)")
    duration: LeaveDuration = LeaveDuration.full_day
    reason: Optional[str] = Field(None, max_length=1000)

    @model_validator(mode="after")
    def validate_dates(self) -> "LeaveApplyRequest":
        if self.start_date > self.end_date:
            raise ValueError("start_date must be on or before end_date.")
        if (self.end_date - self.start_date).days > 365:
            raise ValueError("Leave request cannot span more than 365 days.")
        if self.duration == LeaveDuration.half_day and self.start_date != self.end_date:
            raise ValueError("A half-day leave must start and end on the same date.")
        return self


class LeaveOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    tenant_id: uuid.UUID
    user_id: uuid.UUID
    user_email: str
    leave_type_id: uuid.UUID
    start_date: date
    end_date: date
    total_days: Decimal
    duration: LeaveDuration
    reason: Optional[str] = None
    status: LeaveStatus
    approved_by: Optional[uuid.UUID] = None
    rejection_reason: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class LeaveStatusUpdateRequest(BaseModel):
    """Payload for ``updateLeaveStatus``."""

    status: LeaveStatus
    approver_id: Optional[uuid.UUID] = None
    rejection_reason: Optional[str] = Field(None, max_length=500)


class LeaveCancelRequest(BaseModel):
    user_id: uuid.UUID
    reason: Optional[str] = Field(None, max_length=500)


class LeaveStatusUpdateResponse(BaseModel):
    success: bool = True
    leave: LeaveOut
    balance: Optional[LeaveBalanceOut] = None

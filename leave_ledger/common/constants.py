"""Enums and constants for the leave ledger — matching database ENUM types."""

from __future__ import annotations

import enum
from decimal import Decimal


# ── Leave ───────────────────────────────────────────────────────────

class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"


# States a pending request may move to; all of them are final.
TERMINAL_LEAVE_STATUSES: frozenset[LeaveStatus] = frozenset(
    {LeaveStatus.approved, LeaveStatus.rejected, LeaveStatus.cancelled}
)


class LeaveDuration(str, enum.Enum):
    full_day = "full_day"
    half_day = "half_day"


# ── Notifications / outbox ──────────────────────────────────────────

class NotificationType(str, enum.Enum):
    leave_approval = "leave_approval"
    leave_rejection = "leave_rejection"
    leave_cancellation = "leave_cancellation"
    comp_off_credit = "comp_off_credit"


class NotificationCategory(str, enum.Enum):
    general = "general"
    alert = "alert"


class OutboxChannel(str, enum.Enum):
    email = "email"
    in_app = "in_app"


class OutboxStatus(str, enum.Enum):
    pending = "pending"
    sent = "sent"
    failed = "failed"


class EmailTemplate(str, enum.Enum):
    leave_approved = "leave_approved"
    leave_cancelled = "leave_cancelled"


# ── Working-time constants ──────────────────────────────────────────

HOURS_PER_DAY = Decimal("8")
WORK_DAYS_PER_WEEK = Decimal("5")
WEEKLY_HOURS_THRESHOLD = HOURS_PER_DAY * WORK_DAYS_PER_WEEK   # 40h
HALF_DAY = Decimal("0.5")

# ── Misc constants ──────────────────────────────────────────────────

MIN_LEDGER_YEAR = 2000
MAX_LEDGER_YEAR = 2100
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50
SYSTEM_ACTOR = "system"

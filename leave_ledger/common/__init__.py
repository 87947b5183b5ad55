"""Common module — shared utilities for the leave ledger."""

from leave_ledger.common.constants import (
    DEFAULT_PAGE_SIZE,
    HALF_DAY,
    HOURS_PER_DAY,
    MAX_PAGE_SIZE,
    WEEKLY_HOURS_THRESHOLD,
    LeaveDuration,
    LeaveStatus,
    NotificationType,
    OutboxChannel,
    OutboxStatus,
)
from leave_ledger.common.exceptions import (
    AlreadyProcessedException,
    AppException,
    ForbiddenException,
    NotFoundException,
    StateError,
    TenantMismatchException,
    ValidationException,
    register_exception_handlers,
)
from leave_ledger.common.pagination import (
    PaginatedResponse,
    PaginationMeta,
    PaginationParams,
    paginate,
)

__all__ = [
    # Constants / Enums
    "LeaveDuration",
    "LeaveStatus",
    "NotificationType",
    "OutboxChannel",
    "OutboxStatus",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    "HALF_DAY",
    "HOURS_PER_DAY",
    "WEEKLY_HOURS_THRESHOLD",
    # Exceptions
    "AlreadyProcessedException",
    "AppException",
    "ForbiddenException",
    "NotFoundException",
    "StateError",
    "TenantMismatchException",
    "ValidationException",
    "register_exception_handlers",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "paginate",
]

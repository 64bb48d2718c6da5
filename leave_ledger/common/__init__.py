"""Common module — shared utilities for the leave ledger."""

from leave_ledger.common.constants import (
    ACTIVE_LEAVE_STATUSES,
    DATE_FORMAT,
    DEFAULT_PAGE_SIZE,
    LEAVE_TRANSITIONS,
    MAX_PAGE_SIZE,
    TERMINAL_LEAVE_STATUSES,
    LeaveDayType,
    LeaveStatus,
    ListScope,
    UserRole,
)
from leave_ledger.common.exceptions import (
    AppException,
    InsufficientBalanceException,
    InvalidRangeException,
    InvalidTransitionException,
    NotFoundException,
    OverlappingRequestException,
    StorageException,
    UnauthorizedException,
    ValidationException,
    register_exception_handlers,
)
from leave_ledger.common.locks import KeyedLock
from leave_ledger.common.pagination import (
    PaginatedResponse,
    PaginationMeta,
    PaginationParams,
    paginate,
)
from leave_ledger.common.retry import storage_retry

__all__ = [
    # Constants / Enums
    "ACTIVE_LEAVE_STATUSES",
    "LEAVE_TRANSITIONS",
    "TERMINAL_LEAVE_STATUSES",
    "LeaveDayType",
    "LeaveStatus",
    "ListScope",
    "UserRole",
    "DATE_FORMAT",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AppException",
    "InsufficientBalanceException",
    "InvalidRangeException",
    "InvalidTransitionException",
    "NotFoundException",
    "OverlappingRequestException",
    "StorageException",
    "UnauthorizedException",
    "ValidationException",
    "register_exception_handlers",
    # Concurrency
    "KeyedLock",
    "storage_retry",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "paginate",
]

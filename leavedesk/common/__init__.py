"""Common module — shared constants, exceptions and pagination for leavedesk.

``leavedesk.common.audit`` is imported directly by callers; it depends on
``leavedesk.database`` and is kept out of this namespace to avoid an import
cycle.
"""

from leavedesk.common.constants import (
    APPROVER_ROLES,
    BLOCKING_STATUSES,
    HALF_DAY_CHARGE,
    AuditAction,
    LeaveDuration,
    LeaveStatus,
    UserRole,
)
from leavedesk.common.exceptions import (
    AlreadyProcessedError,
    AppException,
    ConflictError,
    ForbiddenException,
    InsufficientBalanceError,
    InvalidRangeError,
    MissingReasonError,
    NotFoundException,
    OverlappingRequestError,
    StorageFailure,
    ValidationException,
    register_exception_handlers,
)
from leavedesk.common.pagination import PaginatedResponse, PaginationMeta, paginate

__all__ = [
    # Constants / Enums
    "APPROVER_ROLES",
    "BLOCKING_STATUSES",
    "HALF_DAY_CHARGE",
    "AuditAction",
    "LeaveDuration",
    "LeaveStatus",
    "UserRole",
    # Exceptions
    "AlreadyProcessedError",
    "AppException",
    "ConflictError",
    "ForbiddenException",
    "InsufficientBalanceError",
    "InvalidRangeError",
    "MissingReasonError",
    "NotFoundException",
    "OverlappingRequestError",
    "StorageFailure",
    "ValidationException",
    "register_exception_handlers",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "paginate",
]

"""Common module — shared utilities for Leave Desk."""

from leavedesk.common.audit import AuditTrail, create_audit_entry, get_audit_history
from leavedesk.common.constants import (
    APPROVER_ROLES,
    DATE_FORMAT,
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    PERMISSIONS,
    ApprovalStatus,
    ApprovalStep,
    LeaveStatus,
    LeaveType,
    NotificationTemplate,
    UserRole,
)
from leavedesk.common.exceptions import (
    AppException,
    ConflictError,
    DuplicateException,
    ForbiddenException,
    InsufficientBalanceError,
    InvalidRangeError,
    InvalidTransitionError,
    LeaveRuleViolation,
    NotFoundException,
    PastDateError,
    ValidationException,
    register_exception_handlers,
)
from leavedesk.common.filters import apply_filters, apply_sorting
from leavedesk.common.pagination import (
    PaginatedResponse,
    PaginationMeta,
    PaginationParams,
    paginate,
)

__all__ = [
    # Audit
    "AuditTrail",
    "create_audit_entry",
    "get_audit_history",
    # Constants / Enums
    "ApprovalStatus",
    "ApprovalStep",
    "LeaveStatus",
    "LeaveType",
    "NotificationTemplate",
    "UserRole",
    "APPROVER_ROLES",
    "PERMISSIONS",
    "DATE_FORMAT",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AppException",
    "ConflictError",
    "DuplicateException",
    "ForbiddenException",
    "InsufficientBalanceError",
    "InvalidRangeError",
    "InvalidTransitionError",
    "LeaveRuleViolation",
    "NotFoundException",
    "PastDateError",
    "ValidationException",
    "register_exception_handlers",
    # Filters
    "apply_filters",
    "apply_sorting",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "paginate",
]

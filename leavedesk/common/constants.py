"""Enums and constants for Leave Desk — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "employee"
    manager = "manager"
    coordinator = "coordinator"
    admin = "admin"


# Roles allowed to act on other employees' leave requests.
APPROVER_ROLES: tuple[UserRole, ...] = (
    UserRole.manager,
    UserRole.coordinator,
    UserRole.admin,
)


# ── Leave ───────────────────────────────────────────────────────────

class LeaveType(str, enum.Enum):
    sick = "sick"
    vacation = "vacation"
    personal = "personal"
    emergency = "emergency"
    maternity = "maternity"
    paternity = "paternity"
    other = "other"


class LeaveStatus(str, enum.Enum):
    """Overall lifecycle status of a leave request."""

    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"


class ApprovalStatus(str, enum.Enum):
    """Status of a single sub-approval (manager-side or coordinator-side)."""

    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class ApprovalStep(str, enum.Enum):
    manager = "manager"
    coordinator = "coordinator"


# ── Notifications ───────────────────────────────────────────────────

class NotificationTemplate(str, enum.Enum):
    leave_request = "leave_request"
    leave_approval = "leave_approval"


# ── Role-based permissions ──────────────────────────────────────────

PERMISSIONS: dict[UserRole, list[str]] = {
    UserRole.employee: [
        "profile:read_own",
        "leave:request",
        "leave:read_own",
        "leave:cancel_own",
        "notification:read_own",
    ],
    UserRole.manager: [
        "profile:read_own",
        "profile:read_all",
        "profile:update",
        "leave:request",
        "leave:read_own",
        "leave:read_team",
        "leave:decide",
        "leave:cancel_own",
        "notification:read_own",
    ],
    UserRole.coordinator: [
        "profile:read_own",
        "profile:read_all",
        "leave:request",
        "leave:read_own",
        "leave:read_team",
        "leave:decide",
        "leave:cancel_own",
        "notification:read_own",
    ],
    UserRole.admin: [
        "profile:read_own",
        "profile:read_all",
        "profile:update",
        "profile:create",
        "profile:deactivate",
        "department:manage",
        "leave:request",
        "leave:read_own",
        "leave:read_team",
        "leave:decide",
        "leave:cancel_own",
        "leave:provision_balance",
        "notification:read_own",
        "audit:read",
    ],
}

# ── Misc constants ──────────────────────────────────────────────────

DATE_FORMAT = "%a %b %d %Y"       # e.g. Mon Jun 01 2026
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 10

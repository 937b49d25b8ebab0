"""Enums and constants for the leave engine — matching the stored column values."""

from __future__ import annotations

import enum
from decimal import Decimal


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "employee"
    manager = "manager"
    hr = "hr"
    admin = "admin"


# ── Leave ───────────────────────────────────────────────────────────

class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"


class LeaveDuration(str, enum.Enum):
    full_day = "full-day"
    half_day_morning = "half-day-morning"
    half_day_afternoon = "half-day-afternoon"


# Statuses that occupy calendar days for overlap purposes
BLOCKING_STATUSES: tuple[LeaveStatus, ...] = (LeaveStatus.pending, LeaveStatus.approved)

TERMINAL_STATUSES: frozenset[LeaveStatus] = frozenset(
    {LeaveStatus.approved, LeaveStatus.rejected, LeaveStatus.cancelled}
)

# Half-day policy: a half-day request charges
# 0.5 days no matter how many calendar days its range spans.
HALF_DAY_CHARGE = Decimal("0.5")


# ── Audit ───────────────────────────────────────────────────────────

class AuditAction(str, enum.Enum):
    create = "CREATE"
    update = "UPDATE"
    approve = "APPROVE"
    reject = "REJECT"
    cancel = "CANCEL"
    deactivate = "DEACTIVATE"


RESOURCE_LEAVE_REQUEST = "leave_request"
RESOURCE_EMPLOYEE = "employee"


# ── Leave-type catalogue ────────────────────────────────────────────

# Leave-type name (lower-cased) → Employee entitlement attribute.
# Types not listed here are allocated 0 days at onboarding.
ENTITLEMENT_FIELDS: dict[str, str] = {
    "annual leave": "annual_leave_entitlement",
    "sick leave": "sick_leave_entitlement",
    "emergency leave": "emergency_leave_entitlement",
}

DEFAULT_LEAVE_TYPES: list[dict] = [
    {"name": "Annual Leave", "description": "Yearly vacation leave", "max_days": 21, "requires_document": False},
    {"name": "Sick Leave", "description": "Medical leave", "max_days": 10, "requires_document": True},
    {"name": "Emergency Leave", "description": "Urgent personal matters", "max_days": 5, "requires_document": False},
    {"name": "Maternity Leave", "description": "Maternity leave for new mothers", "max_days": 90, "requires_document": True},
    {"name": "Paternity Leave", "description": "Paternity leave for new fathers", "max_days": 10, "requires_document": True},
    {"name": "Bereavement Leave", "description": "Leave for family bereavement", "max_days": 3, "requires_document": False},
]


# ── Role-based permissions ──────────────────────────────────────────

APPROVER_ROLES: tuple[UserRole, ...] = (UserRole.manager, UserRole.hr, UserRole.admin)
PEOPLE_ADMIN_ROLES: tuple[UserRole, ...] = (UserRole.hr, UserRole.admin)

"""Core HR ORM model: Employee.

SQLAlchemy 2.0 async-compatible model with Mapped[] annotations. The
manager reference is self-referential and must form a forest; acyclicity is
validated by ``EmployeeService`` before any write.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leavedesk.common.constants import ENTITLEMENT_FIELDS, UserRole
from leavedesk.config import settings
from leavedesk.database import Base

if TYPE_CHECKING:
    from leavedesk.leave.models import LeaveBalance, LeaveRequest


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Employee(Base):
    """Employee record — owner of leave requests and balances."""

    __tablename__ = "employees"

    # ── Primary key ─────────────────────────────────────────────────
    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    # ── Identifiers ─────────────────────────────────────────────────
    employee_code: Mapped[str] = mapped_column(
        sa.String(20), unique=True, nullable=False,
    )
    email: Mapped[str] = mapped_column(
        sa.String(255), unique=True, nullable=False,
    )

    # ── Name ────────────────────────────────────────────────────────
    first_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)

    # ── Org hierarchy ───────────────────────────────────────────────
    role: Mapped[UserRole] = mapped_column(
        sa.Enum(
            UserRole,
            name="user_role",
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=UserRole.employee,
    )
    manager_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        sa.Uuid, sa.ForeignKey("employees.id"),
    )
    hire_date: Mapped[date] = mapped_column(sa.Date, nullable=False)

    # ── Entitlements (days per year) ────────────────────────────────
    annual_leave_entitlement: Mapped[int] = mapped_column(
        sa.Integer, nullable=False, default=lambda: settings.DEFAULT_ANNUAL_ENTITLEMENT,
    )
    sick_leave_entitlement: Mapped[int] = mapped_column(
        sa.Integer, nullable=False, default=lambda: settings.DEFAULT_SICK_ENTITLEMENT,
    )
    emergency_leave_entitlement: Mapped[int] = mapped_column(
        sa.Integer, nullable=False, default=lambda: settings.DEFAULT_EMERGENCY_ENTITLEMENT,
    )

    # ── Status / Timestamps ─────────────────────────────────────────
    is_active: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=True, server_default=sa.true(),
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, server_default=sa.func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, server_default=sa.func.now(),
    )

    # ── Relationships ───────────────────────────────────────────────
    manager: Mapped[Optional[Employee]] = relationship(
        remote_side=[id], foreign_keys=[manager_id],
    )
    leave_requests: Mapped[list[LeaveRequest]] = relationship(
        back_populates="employee", foreign_keys="LeaveRequest.employee_id",
    )
    leave_balances: Mapped[list[LeaveBalance]] = relationship(
        back_populates="employee",
    )

    def entitlement_for(self, leave_type_name: str) -> int:
        """Days allocated for *leave_type_name*; 0 for unmapped types."""
        field = ENTITLEMENT_FIELDS.get(leave_type_name.strip().lower())
        if field is None:
            return 0
        return getattr(self, field) or 0

    def __repr__(self) -> str:
        return f"<Employee {self.employee_code} ({self.role.value})>"

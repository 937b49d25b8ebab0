"""Leave ORM models: LeaveType, LeaveBalance, LeaveRequest."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leavedesk.common.constants import LeaveDuration, LeaveStatus
from leavedesk.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class LeaveType(Base):
    __tablename__ = "leave_types"

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(sa.String(50), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(sa.Text)
    max_days: Mapped[Optional[int]] = mapped_column(sa.Integer)
    requires_approval: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=True, server_default=sa.true()
    )
    requires_document: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=False, server_default=sa.false()
    )
    is_active: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=True, server_default=sa.true()
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, server_default=sa.func.now()
    )

    # Relationships
    balances: Mapped[list[LeaveBalance]] = relationship(back_populates="leave_type")
    requests: Mapped[list[LeaveRequest]] = relationship(back_populates="leave_type")

    def __repr__(self) -> str:
        return f"<LeaveType {self.name!r}>"


class LeaveBalance(Base):
    """One ledger row per (employee, leave type, year)."""

    __tablename__ = "leave_balances"
    __table_args__ = (
        sa.UniqueConstraint(
            "employee_id", "leave_type_id", "year", name="uq_leave_balance"
        ),
        sa.CheckConstraint(
            "remaining_days = allocated_days - used_days",
            name="ck_leave_balance_remaining",
        ),
        sa.Index("ix_leave_balances_employee_year", "employee_id", "year"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("employees.id"), nullable=False
    )
    leave_type_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("leave_types.id"), nullable=False
    )
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    allocated_days: Mapped[Decimal] = mapped_column(sa.Numeric(5, 1), nullable=False)
    used_days: Mapped[Decimal] = mapped_column(
        sa.Numeric(5, 1), nullable=False, default=Decimal("0")
    )
    remaining_days: Mapped[Decimal] = mapped_column(sa.Numeric(5, 1), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, server_default=sa.func.now()
    )

    # Relationships
    employee: Mapped["leavedesk.core_hr.models.Employee"] = relationship(
        back_populates="leave_balances"
    )
    leave_type: Mapped[LeaveType] = relationship(back_populates="balances")


class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        sa.CheckConstraint("start_date <= end_date", name="ck_leave_request_range"),
        sa.Index("ix_leave_requests_employee_id", "employee_id"),
        sa.Index("ix_leave_requests_status", "status"),
        sa.Index("ix_leave_requests_dates", "start_date", "end_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("employees.id"), nullable=False
    )
    leave_type_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("leave_types.id"), nullable=False
    )
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    duration: Mapped[LeaveDuration] = mapped_column(
        sa.Enum(LeaveDuration, name="leave_duration", values_callable=_enum_values),
        nullable=False,
        default=LeaveDuration.full_day,
    )
    total_days: Mapped[Decimal] = mapped_column(sa.Numeric(5, 1), nullable=False)
    reason: Mapped[str] = mapped_column(sa.Text, nullable=False)
    status: Mapped[LeaveStatus] = mapped_column(
        sa.Enum(LeaveStatus, name="leave_status", values_callable=_enum_values),
        nullable=False,
        default=LeaveStatus.pending,
    )
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        sa.Uuid, sa.ForeignKey("employees.id")
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    rejection_reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    supporting_document: Mapped[Optional[str]] = mapped_column(sa.String(255))
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, server_default=sa.func.now()
    )

    # Relationships
    employee: Mapped["leavedesk.core_hr.models.Employee"] = relationship(
        back_populates="leave_requests", foreign_keys=[employee_id]
    )
    approver: Mapped[Optional["leavedesk.core_hr.models.Employee"]] = relationship(
        foreign_keys=[approved_by]
    )
    leave_type: Mapped[LeaveType] = relationship(back_populates="requests")

    @property
    def ledger_year(self) -> int:
        """Year whose balance this request is charged against."""
        return self.start_date.year

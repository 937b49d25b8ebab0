"""Shared test fixtures — async DB, services, seed helpers.

Reusable across all test modules (ledger, overlap, workflow, employees).
Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Keep engine echo off before any import touches pydantic-settings
os.environ.setdefault("ENVIRONMENT", "test")

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from leavedesk.auth.principal import Principal
from leavedesk.common.audit import AuditEvent
from leavedesk.common.constants import UserRole
from leavedesk.core_hr.service import EmployeeService
from leavedesk.database import Base
from leavedesk.leave.service import LeaveService

# Import ALL model modules so SQLAlchemy can resolve cross-module relationships
import leavedesk.common.audit  # noqa: F401
import leavedesk.core_hr.models  # noqa: F401
import leavedesk.leave.models  # noqa: F401

from leavedesk.core_hr.models import Employee
from leavedesk.leave.models import LeaveBalance, LeaveType


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)

FIXED_NOW = datetime(2025, 3, 1, 9, 30, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


# ── Database session (for direct DB operations in tests) ────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── Audit ───────────────────────────────────────────────────────────

class RecordingAuditSink:
    """Collects emitted events in memory."""

    def __init__(self) -> None:
        self.events: list[AuditEvent] = []

    async def emit(self, session: AsyncSession, event: AuditEvent) -> None:
        self.events.append(event)

    def actions(self) -> list[str]:
        return [e.action.value for e in self.events]


@pytest.fixture
def audit_sink() -> RecordingAuditSink:
    return RecordingAuditSink()


@pytest.fixture
def leave_service(audit_sink) -> LeaveService:
    return LeaveService(audit_sink=audit_sink, clock=lambda: FIXED_NOW)


@pytest.fixture
def employee_service(audit_sink) -> EmployeeService:
    return EmployeeService(audit_sink=audit_sink, clock=lambda: FIXED_NOW)


# ── Seed helpers ────────────────────────────────────────────────────

async def seed_leave_type(
    db: AsyncSession,
    *,
    name: str = "Annual Leave",
    max_days: Optional[int] = 21,
    requires_document: bool = False,
    is_active: bool = True,
) -> LeaveType:
    lt = LeaveType(
        id=uuid.uuid4(),
        name=name,
        description=f"{name} (test)",
        max_days=max_days,
        requires_approval=True,
        requires_document=requires_document,
        is_active=is_active,
        created_at=datetime.now(timezone.utc),
    )
    db.add(lt)
    await db.flush()
    return lt


async def seed_employee(
    db: AsyncSession,
    *,
    role: UserRole = UserRole.employee,
    first_name: str = "Test",
    last_name: str = "Employee",
    manager_id: Optional[uuid.UUID] = None,
    annual: int = 21,
    sick: int = 10,
    emergency: int = 5,
    is_active: bool = True,
) -> Employee:
    code = uuid.uuid4().hex[:6].upper()
    emp = Employee(
        id=uuid.uuid4(),
        employee_code=f"EMP-{code}",
        email=f"{first_name.lower()}.{code.lower()}@leavedesk.io",
        first_name=first_name,
        last_name=last_name,
        role=role,
        manager_id=manager_id,
        hire_date=date(2024, 1, 15),
        annual_leave_entitlement=annual,
        sick_leave_entitlement=sick,
        emergency_leave_entitlement=emergency,
        is_active=is_active,
        created_at=datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )
    db.add(emp)
    await db.flush()
    return emp


async def seed_balance(
    db: AsyncSession,
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    *,
    year: int = 2025,
    allocated: Decimal = Decimal("10"),
    used: Decimal = Decimal("0"),
) -> LeaveBalance:
    bal = LeaveBalance(
        id=uuid.uuid4(),
        employee_id=employee_id,
        leave_type_id=leave_type_id,
        year=year,
        allocated_days=allocated,
        used_days=used,
        remaining_days=allocated - used,
    )
    db.add(bal)
    await db.flush()
    return bal


def principal_for(employee: Employee) -> Principal:
    return Principal(id=employee.id, role=employee.role)


def admin_principal() -> Principal:
    return Principal(id=uuid.uuid4(), role=UserRole.admin)

"""Core HR service layer — employee lifecycle and the manager hierarchy.

Uses:
  - ``BalanceLedger.initialize`` from leavedesk.leave.ledger
  - ``emit_audit`` from leavedesk.common.audit
  - ``NotFoundException / ConflictError / ValidationException`` from
    leavedesk.common.exceptions

The manager relation must stay a forest. Every write that sets
``manager_id`` goes through ``assert_acyclic`` first.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, Mapping, Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.auth.principal import Principal, require_role
from leavedesk.common.audit import AuditSink, AuditTrailSink, emit_audit
from leavedesk.common.constants import (
    PEOPLE_ADMIN_ROLES,
    RESOURCE_EMPLOYEE,
    AuditAction,
)
from leavedesk.common.exceptions import (
    ConflictError,
    NotFoundException,
    StorageFailure,
    ValidationException,
)
from leavedesk.core_hr.models import Employee
from leavedesk.core_hr.schemas import EmployeeCreate, EmployeeOut
from leavedesk.database import storage_errors
from leavedesk.leave.ledger import BalanceLedger

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════
# Manager hierarchy
# ═════════════════════════════════════════════════════════════════════


def assert_acyclic(
    reports_to: Mapping[uuid.UUID, Optional[uuid.UUID]],
    employee_id: uuid.UUID,
    manager_id: Optional[uuid.UUID],
) -> None:
    """Raise ``ValidationException`` if *employee_id* → *manager_id* closes a cycle.

    *reports_to* maps every known employee id to its current manager id. The
    ids are laid out in a flat arena and the walk follows integer parent
    indexes from the proposed manager upwards; reaching *employee_id* means
    the employee would end up managing itself.
    """
    if manager_id is None:
        return
    if manager_id == employee_id:
        raise ValidationException({"manager_id": ["An employee cannot manage themselves."]})

    arena: list[uuid.UUID] = list(reports_to)
    for emp_id in (employee_id, manager_id):
        if emp_id not in reports_to:
            arena.append(emp_id)
    index = {emp_id: i for i, emp_id in enumerate(arena)}

    parent: list[Optional[int]] = []
    for emp_id in arena:
        boss = reports_to.get(emp_id)
        parent.append(index.get(boss) if boss is not None else None)
    parent[index[employee_id]] = index[manager_id]

    target = index[employee_id]
    node: Optional[int] = index[manager_id]
    for _ in range(len(arena)):
        if node is None:
            return
        if node == target:
            raise ValidationException(
                {"manager_id": ["This manager assignment would create a reporting cycle."]},
            )
        node = parent[node]

    # Walked the whole arena without reaching a root.
    raise ValidationException(
        {"manager_id": ["The manager chain does not terminate."]},
    )


# ═════════════════════════════════════════════════════════════════════
# EmployeeService
# ═════════════════════════════════════════════════════════════════════


class EmployeeService:
    """Async write operations for employees (HR / admin only)."""

    def __init__(
        self,
        audit_sink: Optional[AuditSink] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.audit_sink: AuditSink = audit_sink or AuditTrailSink()
        self._clock = clock or _utcnow

    # ── Helpers ─────────────────────────────────────────────────────

    @staticmethod
    async def _get_employee(db: AsyncSession, employee_id: uuid.UUID) -> Employee:
        with storage_errors("employees.get"):
            result = await db.execute(
                select(Employee).where(Employee.id == employee_id),
            )
        employee = result.scalars().first()
        if employee is None:
            raise NotFoundException("Employee", str(employee_id))
        return employee

    @staticmethod
    async def _ensure_active_manager(db: AsyncSession, manager_id: uuid.UUID) -> None:
        with storage_errors("employees.get_manager"):
            result = await db.execute(
                select(Employee.id).where(
                    Employee.id == manager_id,
                    Employee.is_active.is_(True),
                )
            )
        if result.scalar_one_or_none() is None:
            raise ValidationException(
                {"manager_id": [f"Manager '{manager_id}' does not exist or is inactive."]},
            )

    @staticmethod
    async def _reporting_lines(
        db: AsyncSession,
    ) -> dict[uuid.UUID, Optional[uuid.UUID]]:
        with storage_errors("employees.reporting_lines"):
            result = await db.execute(select(Employee.id, Employee.manager_id))
        return {row.id: row.manager_id for row in result.all()}

    # ── Create ──────────────────────────────────────────────────────

    async def create_employee(
        self,
        db: AsyncSession,
        actor: Principal,
        data: EmployeeCreate,
        *,
        year: int,
    ) -> EmployeeOut:
        """Create an employee and initialize their ledger rows for *year*."""

        require_role(actor, *PEOPLE_ADMIN_ROLES)

        # Duplicate code / email
        with storage_errors("employees.create.lookup"):
            dup_result = await db.execute(
                select(Employee.employee_code, Employee.email).where(
                    or_(
                        Employee.employee_code == data.employee_code,
                        Employee.email == data.email,
                    )
                )
            )
        for code, email in dup_result.all():
            if code == data.employee_code:
                raise ConflictError("employee_code", data.employee_code)
            if email == data.email:
                raise ConflictError("email", data.email)

        employee_id = uuid.uuid4()
        if data.manager_id is not None:
            await self._ensure_active_manager(db, data.manager_id)
            assert_acyclic(await self._reporting_lines(db), employee_id, data.manager_id)

        now = self._clock()
        employee = Employee(
            id=employee_id,
            **data.model_dump(),
            created_at=now,
            updated_at=now,
        )
        db.add(employee)
        try:
            await db.flush()
        except IntegrityError as exc:
            err = str(exc.orig)
            if "employee_code" in err:
                raise ConflictError("employee_code", data.employee_code) from exc
            if "email" in err:
                raise ConflictError("email", data.email) from exc
            raise StorageFailure("employees.create") from exc
        except SQLAlchemyError as exc:
            logger.error("Storage failure during employees.create: %s", exc)
            raise StorageFailure("employees.create") from exc

        await BalanceLedger.initialize(db, employee, year)

        await emit_audit(
            self.audit_sink,
            db,
            action=AuditAction.create,
            resource=RESOURCE_EMPLOYEE,
            resource_id=employee.id,
            actor_id=actor.id,
            details={**data.model_dump(mode="json"), "ledger_year": year},
        )

        logger.info("Employee %s created by %s", employee.employee_code, actor.id)
        return EmployeeOut.model_validate(employee)

    # ── Manager change ──────────────────────────────────────────────

    async def change_manager(
        self,
        db: AsyncSession,
        actor: Principal,
        employee_id: uuid.UUID,
        manager_id: Optional[uuid.UUID],
    ) -> EmployeeOut:
        """Re-point an employee's manager; ``None`` makes them a root."""

        require_role(actor, *PEOPLE_ADMIN_ROLES)
        employee = await self._get_employee(db, employee_id)

        if manager_id is not None:
            if manager_id != employee_id:
                await self._ensure_active_manager(db, manager_id)
            assert_acyclic(await self._reporting_lines(db), employee_id, manager_id)

        old_manager_id = employee.manager_id
        employee.manager_id = manager_id
        employee.updated_at = self._clock()
        with storage_errors("employees.change_manager"):
            await db.flush()

        await emit_audit(
            self.audit_sink,
            db,
            action=AuditAction.update,
            resource=RESOURCE_EMPLOYEE,
            resource_id=employee.id,
            actor_id=actor.id,
            details={
                "manager_id": {
                    "old": str(old_manager_id) if old_manager_id else None,
                    "new": str(manager_id) if manager_id else None,
                },
            },
        )

        logger.info(
            "Employee %s now reports to %s", employee.employee_code, manager_id,
        )
        return EmployeeOut.model_validate(employee)

    # ── Deactivate ──────────────────────────────────────────────────

    async def deactivate_employee(
        self,
        db: AsyncSession,
        actor: Principal,
        employee_id: uuid.UUID,
    ) -> EmployeeOut:
        """Mark an employee inactive. Their history and balances are kept."""

        require_role(actor, *PEOPLE_ADMIN_ROLES)
        employee = await self._get_employee(db, employee_id)
        if not employee.is_active:
            return EmployeeOut.model_validate(employee)

        employee.is_active = False
        employee.updated_at = self._clock()
        with storage_errors("employees.deactivate"):
            await db.flush()

        await emit_audit(
            self.audit_sink,
            db,
            action=AuditAction.deactivate,
            resource=RESOURCE_EMPLOYEE,
            resource_id=employee.id,
            actor_id=actor.id,
        )

        logger.info("Employee %s deactivated by %s", employee.employee_code, actor.id)
        return EmployeeOut.model_validate(employee)

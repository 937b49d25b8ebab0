"""Balance ledger — per-employee, per-leave-type, per-year day accounting.

Every row keeps ``remaining_days == allocated_days - used_days``; both
counters move together in a single UPDATE. The operative year is always
passed in by the caller, never read from the clock.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from leavedesk.common.exceptions import InsufficientBalanceError
from leavedesk.core_hr.models import Employee
from leavedesk.database import storage_errors
from leavedesk.leave.models import LeaveBalance, LeaveType
from leavedesk.leave.schemas import LeaveBalanceOut

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class BalanceLedger:
    """Async ledger operations; all writes happen in the caller's session."""

    # ─────────────────────────────────────────────────────────────────
    # Initialize
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def initialize(
        db: AsyncSession,
        employee: Employee,
        year: int,
    ) -> list[LeaveBalance]:
        """Create one row per active leave type for *employee* in *year*.

        Allocation comes from the employee's entitlement for the type's name
        (annual / sick / emergency); other types get 0 days. Triples that
        already exist are left untouched, so calling this twice is the same
        as calling it once. Returns only the rows created by this call.
        """
        with storage_errors("ledger.initialize"):
            types_result = await db.execute(
                select(LeaveType)
                .where(LeaveType.is_active.is_(True))
                .order_by(LeaveType.name)
            )
            leave_types = types_result.scalars().all()

            existing_result = await db.execute(
                select(LeaveBalance.leave_type_id).where(
                    LeaveBalance.employee_id == employee.id,
                    LeaveBalance.year == year,
                )
            )
            existing = set(existing_result.scalars().all())

            created: list[LeaveBalance] = []
            for leave_type in leave_types:
                if leave_type.id in existing:
                    continue
                allocated = Decimal(employee.entitlement_for(leave_type.name))
                balance = LeaveBalance(
                    employee_id=employee.id,
                    leave_type_id=leave_type.id,
                    year=year,
                    allocated_days=allocated,
                    used_days=ZERO,
                    remaining_days=allocated,
                )
                db.add(balance)
                created.append(balance)

            await db.flush()

        logger.info(
            "Initialized %d balance row(s) for employee %s in %d",
            len(created), employee.id, year,
        )
        return created

    # ─────────────────────────────────────────────────────────────────
    # CheckSufficient
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def check_sufficient(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
        requested_days: Decimal,
        *,
        lock: bool = False,
    ) -> bool:
        """True iff a row exists and ``remaining_days >= requested_days``.

        A missing row is insufficient, not an error. ``lock=True`` reads the
        row ``FOR UPDATE`` so the answer holds until the unit of work ends.
        """
        query = select(LeaveBalance.remaining_days).where(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.leave_type_id == leave_type_id,
            LeaveBalance.year == year,
        )
        if lock:
            query = query.with_for_update()

        with storage_errors("ledger.check_sufficient"):
            remaining = (await db.execute(query)).scalar_one_or_none()

        if remaining is None:
            return False
        return Decimal(remaining) >= Decimal(requested_days)

    # ─────────────────────────────────────────────────────────────────
    # Debit
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def debit(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
        days: Decimal,
        *,
        now: Optional[datetime] = None,
    ) -> LeaveBalance:
        """Move *days* from remaining to used in one conditional UPDATE.

        The update only matches while ``remaining_days >= days``; when no row
        matches (missing row, or exhausted by a concurrent approval) this
        raises ``InsufficientBalanceError`` and the caller's unit of work must
        roll back.
        """
        days = Decimal(days)
        with storage_errors("ledger.debit"):
            result = await db.execute(
                update(LeaveBalance)
                .where(
                    LeaveBalance.employee_id == employee_id,
                    LeaveBalance.leave_type_id == leave_type_id,
                    LeaveBalance.year == year,
                    LeaveBalance.remaining_days >= days,
                )
                .values(
                    used_days=LeaveBalance.used_days + days,
                    remaining_days=LeaveBalance.remaining_days - days,
                    updated_at=now or datetime.now(timezone.utc),
                )
                .execution_options(synchronize_session=False)
            )

        if result.rowcount != 1:
            logger.warning(
                "Debit of %s day(s) refused for employee %s, leave type %s, year %d",
                days, employee_id, leave_type_id, year,
            )
            name = await BalanceLedger.leave_type_name(db, leave_type_id)
            raise InsufficientBalanceError(name, year, days)

        balance = await BalanceLedger.get_balance(db, employee_id, leave_type_id, year)
        logger.info(
            "Debited %s day(s) for employee %s, leave type %s, year %d (remaining %s)",
            days, employee_id, leave_type_id, year, balance.remaining_days,
        )
        return balance

    # ─────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def leave_type_name(db: AsyncSession, leave_type_id: uuid.UUID) -> str:
        """Display name for *leave_type_id*, falling back to the id itself."""
        with storage_errors("ledger.leave_type_name"):
            result = await db.execute(
                select(LeaveType.name).where(LeaveType.id == leave_type_id),
            )
        name = result.scalar_one_or_none()
        return name if name is not None else str(leave_type_id)

    @staticmethod
    async def get_balance(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
    ) -> Optional[LeaveBalance]:
        """Fresh read of one ledger row (bypasses stale identity-map state)."""
        with storage_errors("ledger.get_balance"):
            result = await db.execute(
                select(LeaveBalance)
                .where(
                    LeaveBalance.employee_id == employee_id,
                    LeaveBalance.leave_type_id == leave_type_id,
                    LeaveBalance.year == year,
                )
                .execution_options(populate_existing=True)
            )
        return result.scalars().first()

    @staticmethod
    async def list_balances(
        db: AsyncSession,
        employee_id: uuid.UUID,
        year: int,
    ) -> list[LeaveBalanceOut]:
        """All ledger rows of an employee for *year*, ordered by leave type name."""
        with storage_errors("ledger.list_balances"):
            result = await db.execute(
                select(LeaveBalance)
                .where(
                    LeaveBalance.employee_id == employee_id,
                    LeaveBalance.year == year,
                )
                .options(selectinload(LeaveBalance.leave_type))
                .execution_options(populate_existing=True)
            )
            balances: Sequence[LeaveBalance] = result.scalars().all()

        return [
            LeaveBalanceOut.model_validate(bal)
            for bal in sorted(balances, key=lambda b: b.leave_type.name)
        ]

"""Leave service layer — the leave-request state machine.

Business logic:
  - Submission: range validation, chargeable days, balance sufficiency,
    overlap detection, persisted as ``pending``
  - Approval: status guard, approval-time balance re-check and debit in the
    caller's unit of work
  - Rejection: status guard, mandatory reason, no ledger mutation
  - Cancellation of pending requests by their owner (or HR/admin)
  - Role-scoped, paginated request listing

States: ``pending`` → ``approved`` | ``rejected`` | ``cancelled``; all three
targets are terminal. Every transition is a compare-and-set on ``status`` so
two concurrent transitions can never both succeed.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Any, Callable, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.auth.principal import Principal, require_role
from leavedesk.common.audit import AuditSink, AuditTrailSink, emit_audit
from leavedesk.common.constants import (
    APPROVER_ROLES,
    PEOPLE_ADMIN_ROLES,
    RESOURCE_LEAVE_REQUEST,
    TERMINAL_STATUSES,
    AuditAction,
    LeaveStatus,
    UserRole,
)
from leavedesk.common.exceptions import (
    AlreadyProcessedError,
    ForbiddenException,
    InsufficientBalanceError,
    MissingReasonError,
    NotFoundException,
    OverlappingRequestError,
)
from leavedesk.common.pagination import PaginatedResponse, paginate
from leavedesk.config import settings
from leavedesk.core_hr.models import Employee
from leavedesk.database import storage_errors
from leavedesk.leave.calculator import calculate_leave_days
from leavedesk.leave.ledger import BalanceLedger
from leavedesk.leave.models import LeaveRequest, LeaveType
from leavedesk.leave.overlap import OverlapChecker
from leavedesk.leave.schemas import LeaveRequestCreate, LeaveRequestOut

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Async leave request operations: submit, approve, reject, cancel, list.

    Mutating operations write through the session they are given and must
    run inside one unit of work (``leavedesk.database.session_scope``) so a
    failure after a partial write rolls everything back.
    """

    def __init__(
        self,
        audit_sink: Optional[AuditSink] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.audit_sink: AuditSink = audit_sink or AuditTrailSink()
        self._clock = clock or _utcnow

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _get_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        *,
        lock: bool = False,
    ) -> LeaveRequest:
        """Fresh read of a request; ``NotFoundException`` if unknown."""
        query = (
            select(LeaveRequest)
            .where(LeaveRequest.id == request_id)
            .execution_options(populate_existing=True)
        )
        if lock:
            query = query.with_for_update()

        with storage_errors("leave.get_request"):
            result = await db.execute(query)
        leave_req = result.scalars().first()
        if leave_req is None:
            raise NotFoundException("LeaveRequest", str(request_id))
        return leave_req

    @staticmethod
    def _ensure_pending(leave_req: LeaveRequest) -> None:
        if leave_req.status in TERMINAL_STATUSES:
            raise AlreadyProcessedError(leave_req.id, leave_req.status)

    @staticmethod
    async def _transition(
        db: AsyncSession,
        leave_req: LeaveRequest,
        target: LeaveStatus,
        **values: Any,
    ) -> LeaveRequest:
        """Compare-and-set ``pending → target``; reload and return the row.

        Zero rows updated means another transition got there first.
        """
        with storage_errors(f"leave.transition.{target.value}"):
            result = await db.execute(
                update(LeaveRequest)
                .where(
                    LeaveRequest.id == leave_req.id,
                    LeaveRequest.status == LeaveStatus.pending,
                )
                .values(status=target, **values)
                .execution_options(synchronize_session=False)
            )

        if result.rowcount != 1:
            current = await LeaveService._get_request(db, leave_req.id)
            logger.info(
                "Transition of leave request %s to %s lost the race (now %s)",
                leave_req.id, target.value, current.status.value,
            )
            raise AlreadyProcessedError(leave_req.id, current.status)

        return await LeaveService._get_request(db, leave_req.id)

    # ─────────────────────────────────────────────────────────────────
    # Submit
    # ─────────────────────────────────────────────────────────────────

    async def submit(
        self,
        db: AsyncSession,
        principal: Principal,
        data: LeaveRequestCreate,
    ) -> LeaveRequestOut:
        """Submit a leave request for the calling employee.

        Order of checks:
          1. ``start_date <= end_date``           → InvalidRangeError
          2. chargeable days via the day calculator
          3. balance for ``start_date.year``       → InsufficientBalanceError
          4. no pending/approved overlap           → OverlappingRequestError
          5. persist as ``pending`` and emit CREATE

        The sufficiency check is advisory: nothing is reserved until approval,
        where the balance is checked again.
        """

        now = self._clock()

        # ── Range + chargeable days ─────────────────────────────────
        total_days = calculate_leave_days(data.start_date, data.end_date, data.duration)
        year = data.start_date.year

        # ── Load employee (row lock serializes same-employee submits) ─
        with storage_errors("leave.submit.load"):
            emp_result = await db.execute(
                select(Employee)
                .where(Employee.id == principal.id, Employee.is_active.is_(True))
                .with_for_update()
            )
            employee = emp_result.scalars().first()
            if employee is None:
                raise NotFoundException("Employee", str(principal.id))

            lt_result = await db.execute(
                select(LeaveType).where(
                    LeaveType.id == data.leave_type_id,
                    LeaveType.is_active.is_(True),
                )
            )
            leave_type = lt_result.scalars().first()
            if leave_type is None:
                raise NotFoundException("LeaveType", str(data.leave_type_id))

        # ── Balance ─────────────────────────────────────────────────
        sufficient = await BalanceLedger.check_sufficient(
            db, employee.id, leave_type.id, year, total_days,
        )
        if not sufficient:
            raise InsufficientBalanceError(leave_type.name, year, total_days)

        # ── Overlap ─────────────────────────────────────────────────
        if await OverlapChecker.has_overlap(
            db, employee.id, data.start_date, data.end_date,
        ):
            raise OverlappingRequestError(data.start_date, data.end_date)

        # ── Persist ─────────────────────────────────────────────────
        leave_request = LeaveRequest(
            employee_id=employee.id,
            leave_type_id=leave_type.id,
            start_date=data.start_date,
            end_date=data.end_date,
            duration=data.duration,
            total_days=total_days,
            reason=data.reason,
            status=LeaveStatus.pending,
            supporting_document=data.supporting_document,
            created_at=now,
            updated_at=now,
        )
        db.add(leave_request)
        with storage_errors("leave.submit.persist"):
            await db.flush()

        # ── Audit ───────────────────────────────────────────────────
        await emit_audit(
            self.audit_sink,
            db,
            action=AuditAction.create,
            resource=RESOURCE_LEAVE_REQUEST,
            resource_id=leave_request.id,
            actor_id=employee.id,
            details={
                "leave_type_id": str(leave_type.id),
                "start_date": data.start_date.isoformat(),
                "end_date": data.end_date.isoformat(),
                "duration": data.duration.value,
                "total_days": str(total_days),
            },
        )

        logger.info(
            "Leave request %s submitted by %s: %s day(s) of %s",
            leave_request.id, employee.id, total_days, leave_type.name,
        )
        return LeaveRequestOut.model_validate(leave_request)

    # ─────────────────────────────────────────────────────────────────
    # Approve
    # ─────────────────────────────────────────────────────────────────

    async def approve(
        self,
        db: AsyncSession,
        request_id: uuid.UUID,
        approver: Principal,
        *,
        comments: Optional[str] = None,
    ) -> LeaveRequestOut:
        """Approve a pending request and debit the ledger.

        The balance is re-validated here with the row locked; a balance that
        another approval has since exhausted fails with
        ``InsufficientBalanceError`` and leaves the request pending. Status
        transition and debit happen in the same unit of work.
        """

        require_role(approver, *APPROVER_ROLES)
        now = self._clock()

        leave_req = await self._get_request(db, request_id, lock=True)
        self._ensure_pending(leave_req)

        year = leave_req.ledger_year
        sufficient = await BalanceLedger.check_sufficient(
            db,
            leave_req.employee_id,
            leave_req.leave_type_id,
            year,
            leave_req.total_days,
            lock=True,
        )
        if not sufficient:
            raise InsufficientBalanceError(
                await BalanceLedger.leave_type_name(db, leave_req.leave_type_id),
                year,
                leave_req.total_days,
            )

        approved = await self._transition(
            db,
            leave_req,
            LeaveStatus.approved,
            approved_by=approver.id,
            approved_at=now,
            updated_at=now,
        )
        await BalanceLedger.debit(
            db,
            approved.employee_id,
            approved.leave_type_id,
            year,
            approved.total_days,
            now=now,
        )

        await emit_audit(
            self.audit_sink,
            db,
            action=AuditAction.approve,
            resource=RESOURCE_LEAVE_REQUEST,
            resource_id=approved.id,
            actor_id=approver.id,
            details={
                "comments": comments,
                "total_days": str(approved.total_days),
                "year": year,
            },
        )

        logger.info("Leave request %s approved by %s", approved.id, approver.id)
        return LeaveRequestOut.model_validate(approved)

    # ─────────────────────────────────────────────────────────────────
    # Reject
    # ─────────────────────────────────────────────────────────────────

    async def reject(
        self,
        db: AsyncSession,
        request_id: uuid.UUID,
        approver: Principal,
        rejection_reason: Optional[str],
    ) -> LeaveRequestOut:
        """Reject a pending request. The ledger is never touched."""

        if rejection_reason is None or not rejection_reason.strip():
            raise MissingReasonError()

        require_role(approver, *APPROVER_ROLES)
        now = self._clock()

        leave_req = await self._get_request(db, request_id, lock=True)
        self._ensure_pending(leave_req)

        rejected = await self._transition(
            db,
            leave_req,
            LeaveStatus.rejected,
            approved_by=approver.id,
            approved_at=now,
            rejection_reason=rejection_reason.strip(),
            updated_at=now,
        )

        await emit_audit(
            self.audit_sink,
            db,
            action=AuditAction.reject,
            resource=RESOURCE_LEAVE_REQUEST,
            resource_id=rejected.id,
            actor_id=approver.id,
            details={"rejection_reason": rejected.rejection_reason},
        )

        logger.info("Leave request %s rejected by %s", rejected.id, approver.id)
        return LeaveRequestOut.model_validate(rejected)

    # ─────────────────────────────────────────────────────────────────
    # Cancel
    # ─────────────────────────────────────────────────────────────────

    async def cancel(
        self,
        db: AsyncSession,
        request_id: uuid.UUID,
        principal: Principal,
        *,
        reason: Optional[str] = None,
    ) -> LeaveRequestOut:
        """Cancel a pending request.

        Only ``pending`` requests can be cancelled: an approved request is
        terminal, so nothing debited ever has to be credited back.
        """

        now = self._clock()

        leave_req = await self._get_request(db, request_id, lock=True)
        is_owner = leave_req.employee_id == principal.id
        if not (is_owner or principal.has_role(*PEOPLE_ADMIN_ROLES)):
            raise ForbiddenException("You can only cancel your own leave requests.")
        self._ensure_pending(leave_req)

        cancelled = await self._transition(
            db,
            leave_req,
            LeaveStatus.cancelled,
            cancelled_at=now,
            updated_at=now,
        )

        await emit_audit(
            self.audit_sink,
            db,
            action=AuditAction.cancel,
            resource=RESOURCE_LEAVE_REQUEST,
            resource_id=cancelled.id,
            actor_id=principal.id,
            details={"reason": reason},
        )

        logger.info("Leave request %s cancelled by %s", cancelled.id, principal.id)
        return LeaveRequestOut.model_validate(cancelled)

    # ─────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────

    async def get_request(
        self,
        db: AsyncSession,
        request_id: uuid.UUID,
    ) -> LeaveRequestOut:
        leave_req = await self._get_request(db, request_id)
        return LeaveRequestOut.model_validate(leave_req)

    async def list_requests(
        self,
        db: AsyncSession,
        principal: Principal,
        *,
        status: Optional[LeaveStatus] = None,
        employee_id: Optional[uuid.UUID] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        page: int = 1,
        page_size: int = settings.DEFAULT_PAGE_SIZE,
    ) -> PaginatedResponse[LeaveRequestOut]:
        """List leave requests visible to *principal*, newest first.

        Scopes:
          - employee: own requests only
          - manager: requests of direct reports
          - hr / admin: all requests
        """

        query = select(LeaveRequest).order_by(
            LeaveRequest.created_at.desc(), LeaveRequest.id,
        )

        # Scope filtering
        if principal.role == UserRole.employee:
            query = query.where(LeaveRequest.employee_id == principal.id)
        elif principal.role == UserRole.manager:
            reports = select(Employee.id).where(Employee.manager_id == principal.id)
            query = query.where(LeaveRequest.employee_id.in_(reports))

        # Additional filters
        if status:
            query = query.where(LeaveRequest.status == status)
        if employee_id:
            query = query.where(LeaveRequest.employee_id == employee_id)
        if from_date:
            query = query.where(LeaveRequest.start_date >= from_date)
        if to_date:
            query = query.where(LeaveRequest.end_date <= to_date)

        with storage_errors("leave.list_requests"):
            rows, meta = await paginate(db, query, page=page, page_size=page_size)

        return PaginatedResponse[LeaveRequestOut](
            data=[LeaveRequestOut.model_validate(r) for r in rows],
            meta=meta,
        )

"""Overlap checker — does a candidate range collide with live requests?"""

from __future__ import annotations

import logging
import uuid
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.common.constants import BLOCKING_STATUSES
from leavedesk.leave.models import LeaveRequest

logger = logging.getLogger(__name__)


class OverlapChecker:
    """Inclusive-interval overlap against pending/approved requests.

    ``[a, b]`` and ``[c, d]`` overlap iff ``a <= d and c <= b``, so a shared
    boundary day counts. Rejected and cancelled requests never block.
    """

    @staticmethod
    def ranges_overlap(a: date, b: date, c: date, d: date) -> bool:
        return a <= d and c <= b

    @staticmethod
    async def has_overlap(
        db: AsyncSession,
        employee_id: uuid.UUID,
        start_date: date,
        end_date: date,
    ) -> bool:
        """True if the employee already holds a blocking request in the range.

        Fail-closed: any storage error is logged and reported as an overlap.
        """
        query = select(func.count()).select_from(LeaveRequest).where(
            LeaveRequest.employee_id == employee_id,
            LeaveRequest.status.in_(BLOCKING_STATUSES),
            LeaveRequest.start_date <= end_date,
            LeaveRequest.end_date >= start_date,
        )

        try:
            result = await db.execute(query)
            count = result.scalar_one()
        except SQLAlchemyError as exc:
            logger.warning(
                "Overlap lookup failed for employee %s (%s – %s); "
                "treating as overlapping: %s",
                employee_id, start_date, end_date, exc,
            )
            return True

        return count > 0

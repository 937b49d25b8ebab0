"""Leave-type catalogue — default reference data and active type listing."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.common.constants import DEFAULT_LEAVE_TYPES
from leavedesk.database import storage_errors
from leavedesk.leave.models import LeaveType
from leavedesk.leave.schemas import LeaveTypeOut

logger = logging.getLogger(__name__)


class LeaveTypeCatalog:

    @staticmethod
    async def seed_defaults(db: AsyncSession) -> list[LeaveType]:
        """Insert the default leave types whose names are not present yet."""
        with storage_errors("catalog.seed_defaults"):
            result = await db.execute(select(LeaveType.name))
            existing = {name.lower() for name in result.scalars().all()}

            created: list[LeaveType] = []
            for defaults in DEFAULT_LEAVE_TYPES:
                if defaults["name"].lower() in existing:
                    continue
                leave_type = LeaveType(**defaults)
                db.add(leave_type)
                created.append(leave_type)
            await db.flush()

        if created:
            logger.info("Seeded %d default leave type(s)", len(created))
        return created

    @staticmethod
    async def list_active(db: AsyncSession) -> list[LeaveTypeOut]:
        with storage_errors("catalog.list_active"):
            result = await db.execute(
                select(LeaveType)
                .where(LeaveType.is_active.is_(True))
                .order_by(LeaveType.name)
            )
        return [LeaveTypeOut.model_validate(lt) for lt in result.scalars().all()]

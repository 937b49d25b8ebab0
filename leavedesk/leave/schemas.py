"""Leave Pydantic v2 schemas — operation inputs and read models.

Naming conventions:
  - *Create             → operation inputs (write)
  - *Out                → read models returned by the services
  - *Brief              → compact embedded representations
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from leavedesk.common.constants import LeaveDuration, LeaveStatus


# ═════════════════════════════════════════════════════════════════════
# Leave Type
# ═════════════════════════════════════════════════════════════════════


class LeaveTypeBrief(BaseModel):
    """Minimal leave type info embedded in other read models."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str


class LeaveTypeOut(BaseModel):
    """Full leave type representation."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    description: Optional[str] = None
    max_days: Optional[int] = None
    requires_approval: bool = True
    requires_document: bool = False
    is_active: bool = True


# ═════════════════════════════════════════════════════════════════════
# Leave Balance
# ═════════════════════════════════════════════════════════════════════


class LeaveBalanceOut(BaseModel):
    """Ledger row for one (employee, leave type, year)."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    year: int
    allocated_days: Decimal
    used_days: Decimal
    remaining_days: Decimal

    leave_type: Optional[LeaveTypeBrief] = None


# ═════════════════════════════════════════════════════════════════════
# Leave Request — Create
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Payload for submitting a leave request.

    The date order is deliberately not validated here: the state machine
    reports ``InvalidRangeError`` for it.
    """

    leave_type_id: uuid.UUID
    start_date: date = Field(..., description="Leave start date (inclusive)")
    end_date: date = Field(..., description="Leave end date (inclusive)")
    duration: LeaveDuration = LeaveDuration.full_day
    reason: str = Field(..., min_length=1, max_length=1000)
    supporting_document: Optional[str] = Field(
        None,
        max_length=255,
        description="Opaque reference returned by the document store.",
    )


# ═════════════════════════════════════════════════════════════════════
# Leave Request — Response
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestOut(BaseModel):
    """Full leave request read model."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    start_date: date
    end_date: date
    duration: LeaveDuration
    total_days: Decimal
    reason: str
    status: LeaveStatus
    approved_by: Optional[uuid.UUID] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    supporting_document: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

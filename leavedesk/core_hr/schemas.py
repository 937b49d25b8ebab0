"""Core HR Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create  → request bodies (write)
  - *Out     → response bodies (read)
"""


import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from leavedesk.common.constants import UserRole
from leavedesk.config import settings


# ═════════════════════════════════════════════════════════════════════
# Employee — write schemas
# ═════════════════════════════════════════════════════════════════════


class EmployeeCreate(BaseModel):
    """Payload for creating a new employee."""

    employee_code: str = Field(..., min_length=1, max_length=20)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    role: UserRole = UserRole.employee
    manager_id: Optional[uuid.UUID] = None
    hire_date: date
    annual_leave_entitlement: int = Field(
        default_factory=lambda: settings.DEFAULT_ANNUAL_ENTITLEMENT, ge=0,
    )
    sick_leave_entitlement: int = Field(
        default_factory=lambda: settings.DEFAULT_SICK_ENTITLEMENT, ge=0,
    )
    emergency_leave_entitlement: int = Field(
        default_factory=lambda: settings.DEFAULT_EMERGENCY_ENTITLEMENT, ge=0,
    )


# ═════════════════════════════════════════════════════════════════════
# Employee — read schemas
# ═════════════════════════════════════════════════════════════════════


class EmployeeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_code: str
    first_name: str
    last_name: str
    email: str
    role: UserRole
    manager_id: Optional[uuid.UUID] = None
    hire_date: date
    annual_leave_entitlement: int
    sick_leave_entitlement: int
    emergency_leave_entitlement: int
    is_active: bool
    created_at: datetime
    updated_at: datetime

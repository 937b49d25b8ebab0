"""Principal abstraction and role-based checks.

Token validation lives in the host application; the engine only ever sees
the resolved ``{id, role}`` pair.
"""

from __future__ import annotations

import uuid

from pydantic import BaseModel, ConfigDict

from leavedesk.common.constants import UserRole
from leavedesk.common.exceptions import ForbiddenException

# Role hierarchy — each role implicitly includes lower roles
_ROLE_HIERARCHY: dict[UserRole, set[UserRole]] = {
    UserRole.admin: {UserRole.admin, UserRole.hr, UserRole.manager, UserRole.employee},
    UserRole.hr: {UserRole.hr, UserRole.manager, UserRole.employee},
    UserRole.manager: {UserRole.manager, UserRole.employee},
    UserRole.employee: {UserRole.employee},
}


class Principal(BaseModel):
    """The authenticated caller."""

    model_config = ConfigDict(frozen=True)

    id: uuid.UUID
    role: UserRole = UserRole.employee

    def has_role(self, *allowed_roles: UserRole) -> bool:
        effective_roles = _ROLE_HIERARCHY.get(self.role, {self.role})
        return bool(effective_roles.intersection(allowed_roles))


def require_role(principal: Principal, *allowed_roles: UserRole) -> Principal:
    """Raise ``ForbiddenException`` unless *principal* holds one of *allowed_roles*.

    Respects hierarchy — e.g. admin passes a manager check.
    """
    if not principal.has_role(*allowed_roles):
        raise ForbiddenException(
            detail=(
                f"Role '{principal.role.value}' is not permitted. "
                f"Required: {[r.value for r in allowed_roles]}."
            ),
        )
    return principal

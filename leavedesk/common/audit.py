"""Audit events, the audit-trail table, and the sinks events are emitted to.

Emission is fire-and-forget: a failing sink is logged and never fails the
operation that produced the event.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

import sqlalchemy as sa
from pydantic import BaseModel, Field
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column

from leavedesk.common.constants import AuditAction
from leavedesk.database import Base

logger = logging.getLogger(__name__)


# ── Immutable audit-trail table ─────────────────────────────────────

class AuditTrail(Base):
    """Write-only log of every leave and employee transition."""

    __tablename__ = "audit_trail"

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(sa.Uuid, nullable=True)
    action: Mapped[str] = mapped_column(sa.String(50), nullable=False)
    resource: Mapped[str] = mapped_column(sa.String(50), nullable=False)
    resource_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, nullable=False)
    details: Mapped[Optional[dict]] = mapped_column(
        sa.JSON().with_variant(JSONB, "postgresql"),
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=sa.func.now(),
    )

    __table_args__ = (
        sa.Index("ix_audit_trail_actor_action", "actor_id", "action"),
        sa.Index("ix_audit_trail_resource", "resource", "resource_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<AuditTrail {self.action} {self.resource}"
            f"/{self.resource_id} by {self.actor_id}>"
        )


# ── Event + sinks ───────────────────────────────────────────────────

class AuditEvent(BaseModel):
    """One audit record as handed to a sink."""

    actor_id: Optional[uuid.UUID] = None
    action: AuditAction
    resource: str
    resource_id: uuid.UUID
    details: dict[str, Any] = Field(default_factory=dict)


class AuditSink(Protocol):
    async def emit(self, session: AsyncSession, event: AuditEvent) -> None:
        ...


class AuditTrailSink:
    """Default sink: stages an ``audit_trail`` row in the caller's session.

    The row commits or rolls back together with the transition it records.
    """

    async def emit(self, session: AsyncSession, event: AuditEvent) -> None:
        session.add(
            AuditTrail(
                actor_id=event.actor_id,
                action=event.action.value,
                resource=event.resource,
                resource_id=event.resource_id,
                details=event.model_dump(mode="json")["details"],
            )
        )


class LoggingAuditSink:
    """Sink for hosts that ship audit records through their log pipeline."""

    def __init__(self, logger_name: str = "leavedesk.audit") -> None:
        self._logger = logging.getLogger(logger_name)

    async def emit(self, session: AsyncSession, event: AuditEvent) -> None:
        self._logger.info(
            "%s %s/%s by %s %s",
            event.action.value,
            event.resource,
            event.resource_id,
            event.actor_id,
            event.details,
        )


async def emit_audit(
    sink: AuditSink,
    session: AsyncSession,
    *,
    action: AuditAction,
    resource: str,
    resource_id: uuid.UUID,
    actor_id: Optional[uuid.UUID] = None,
    details: Optional[dict[str, Any]] = None,
) -> None:
    """
    Build an ``AuditEvent`` and hand it to *sink*.

    Args:
        sink: Destination for the event.
        session: The session of the unit of work that produced the event.
        action: CREATE | APPROVE | REJECT | CANCEL | ...
        resource: e.g. "leave_request", "employee".
        resource_id: UUID of the affected entity.
        actor_id: UUID of the principal performing the action.
        details: Free-form JSON-serialisable context.
    """
    event = AuditEvent(
        actor_id=actor_id,
        action=action,
        resource=resource,
        resource_id=resource_id,
        details=details or {},
    )
    try:
        await sink.emit(session, event)
    except Exception:
        logger.exception(
            "Audit sink %s failed for %s %s/%s",
            type(sink).__name__, action.value, resource, resource_id,
        )

"""Pagination helpers for SQLAlchemy async list queries."""


import math
from typing import Any, Generic, Sequence, TypeVar

from pydantic import BaseModel
from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.config import settings

T = TypeVar("T")


class PaginationMeta(BaseModel):
    """Metadata block embedded in every paginated response."""

    page: int
    page_size: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class PaginatedResponse(BaseModel, Generic[T]):
    """Standard envelope: ``{"data": [...], "meta": {...}}``."""

    data: Sequence[T]
    meta: PaginationMeta


def clamp_page_size(page_size: int) -> int:
    return max(1, min(page_size, settings.MAX_PAGE_SIZE))


async def paginate(
    session: AsyncSession,
    query: Select,
    *,
    page: int = 1,
    page_size: int = settings.DEFAULT_PAGE_SIZE,
) -> tuple[Sequence[Any], PaginationMeta]:
    """
    Execute *query* with LIMIT/OFFSET for the requested page and return
    the ORM rows together with the pagination meta block.
    """
    page = max(page, 1)
    page_size = clamp_page_size(page_size)

    # ── total count over the filtered query (ORDER BY stripped) ─────
    count_q = select(func.count()).select_from(query.order_by(None).subquery())
    total: int = (await session.execute(count_q)).scalar_one()

    # ── paginated rows ──────────────────────────────────────────────
    offset = (page - 1) * page_size
    rows = (
        await session.execute(query.offset(offset).limit(page_size))
    ).scalars().all()

    total_pages = math.ceil(total / page_size) if total else 0

    return rows, PaginationMeta(
        page=page,
        page_size=page_size,
        total=total,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_prev=page > 1,
    )

"""Async SQLAlchemy engine, session management and unit-of-work helpers."""

import logging
from contextlib import asynccontextmanager, contextmanager
from typing import AsyncIterator, Iterator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from leavedesk.common.exceptions import StorageFailure
from leavedesk.config import settings

logger = logging.getLogger(__name__)

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.ENVIRONMENT == "development",
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency: yield an async database session."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@asynccontextmanager
async def session_scope(
    factory: Optional[async_sessionmaker] = None,
) -> AsyncIterator[AsyncSession]:
    """One unit of work: commit on success, roll back on any exception.

    Usage::

        async with session_scope() as db:
            await service.approve(db, request_id, approver)
    """
    async with (factory or async_session_factory)() as session:
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as exc:
            await session.rollback()
            logger.error("Unit of work failed on commit/flush: %s", exc)
            raise StorageFailure("commit") from exc
        except Exception:
            await session.rollback()
            raise


@contextmanager
def storage_errors(operation: str) -> Iterator[None]:
    """Translate SQLAlchemy errors raised in the block into ``StorageFailure``.

    Business-rule exceptions pass through untouched.
    """
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error("Storage failure during %s: %s", operation, exc)
        raise StorageFailure(operation) from exc

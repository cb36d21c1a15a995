"""Database connection, session management and units of work."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Awaitable, Callable, TypeVar

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from payroll_core.errors import TransientError
from payroll_core.models import Base

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from payroll_core.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    """Create async database engine."""
    if settings.database_url.startswith("sqlite"):
        return create_async_engine(settings.database_url, echo=settings.debug)

    return create_async_engine(
        settings.database_url,
        echo=False,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables (development and tests; production uses migrations)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def with_timeout(awaitable: Awaitable[T], timeout: float | None) -> T:
    """Await with a caller-imposed timeout, raising TransientError on expiry."""
    try:
        if timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError as exc:
        raise TransientError(
            f"Operation did not complete within {timeout}s", timeout=timeout
        ) from exc
    except (OperationalError, InterfaceError) as exc:
        logger.warning("Database unavailable: %s", exc)
        raise TransientError("Database temporarily unavailable") from exc


async def run_in_transaction(
    session_factory: async_sessionmaker[AsyncSession],
    operation: Callable[[AsyncSession], Awaitable[T]],
    timeout: float | None = None,
) -> T:
    """Run operation in one transaction, committing on success.

    Any exception rolls the transaction back. Timeouts and connection-level
    database failures are raised as TransientError.
    """

    async def unit() -> T:
        async with session_factory() as session:
            async with session.begin():
                return await operation(session)

    return await with_timeout(unit(), timeout)

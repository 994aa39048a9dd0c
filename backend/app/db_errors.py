"""Helpers for working with database/SQLAlchemy errors."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from . import config
from .exceptions import PersistenceError, PersistenceTimeout

logger = logging.getLogger(__name__)

T = TypeVar("T")


@asynccontextmanager
async def persistence_guard(
    session: AsyncSession, operation: str
) -> AsyncIterator[AsyncSession]:
    """Roll back and translate store failures raised inside the block.

    Domain exceptions raised by the caller pass through unchanged (after a
    rollback), so a guard failure never leaves half of a unit of work
    committed.
    """

    try:
        yield session
    except SQLAlchemyError as exc:
        logger.error("Persistence failure during %s", operation, exc_info=exc)
        await session.rollback()
        raise PersistenceError(operation) from exc
    except BaseException:
        await session.rollback()
        raise


async def with_timeout(
    awaitable: Awaitable[T], operation: str, timeout: float | None = None
) -> T:
    """Await ``awaitable`` but give up after the configured persistence timeout."""

    limit = config.PERSISTENCE_TIMEOUT_SECONDS if timeout is None else timeout
    try:
        return await asyncio.wait_for(awaitable, timeout=limit)
    except asyncio.TimeoutError as exc:
        logger.warning("Timed out after %.2fs during %s", limit, operation)
        raise PersistenceTimeout(operation, limit) from exc

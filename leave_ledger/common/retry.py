"""Single-retry wrapper for transient storage faults."""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.common.exceptions import StorageException
from leave_ledger.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_transient(exc: BaseException) -> bool:
    """Lost connections and operational faults are worth one more try."""
    if isinstance(exc, (OperationalError, InterfaceError)):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


def storage_retry(operation: str) -> Callable[
    [Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]
]:
    """Retry the wrapped coroutine once when the database fails transiently.

    The wrapped callable takes the ``AsyncSession`` as its first argument and
    must leave nothing half-applied on failure (roll back before raising).
    Business exceptions pass straight through. A second transient failure is
    surfaced as ``StorageException``.
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(db: AsyncSession, *args, **kwargs) -> T:
            try:
                return await func(db, *args, **kwargs)
            except Exception as exc:
                if not is_transient(exc):
                    raise
                logger.warning(
                    "Storage fault during %s, retrying once: %s", operation, exc,
                )
                await db.rollback()

            await asyncio.sleep(settings.STORAGE_RETRY_DELAY_SECONDS)
            try:
                return await func(db, *args, **kwargs)
            except Exception as exc:
                if not is_transient(exc):
                    raise
                logger.error("Storage fault during %s after retry: %s", operation, exc)
                await db.rollback()
                raise StorageException(operation) from exc

        return wrapper

    return decorator

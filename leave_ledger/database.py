"""Async SQLAlchemy engine, session factory and the ``get_db`` dependency."""

from typing import Any, AsyncGenerator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from leave_ledger.config import settings


def _engine_options(url: str) -> dict[str, Any]:
    """Pool sizing only applies to server databases; SQLite uses its own pool."""
    options: dict[str, Any] = {
        "echo": settings.ENVIRONMENT == "development"
        and settings.LOG_LEVEL.lower() == "debug",
    }
    if make_url(url).get_backend_name() != "sqlite":
        options.update(pool_size=10, max_overflow=20, pool_pre_ping=True)
    return options


engine = create_async_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

# Objects stay usable after commit: the lifecycle engine commits inside its
# locking scope and the router still serialises the returned rows.
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Declarative base shared by every ORM model."""


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: yield a session, commit on success, roll back on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise

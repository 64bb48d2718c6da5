"""Shared test fixtures — async DB, client, auth helpers, factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
Seed helpers commit, because a failed ledger operation rolls the session back.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from leave_ledger.auth import service as auth_service
from leave_ledger.common.constants import UserRole
from leave_ledger.database import Base, get_db
from leave_ledger.main import create_app

# Import ALL model modules so SQLAlchemy can resolve cross-module relationships
import leave_ledger.auth.models  # noqa: F401
import leave_ledger.core_hr.models  # noqa: F401
import leave_ledger.leave.models  # noqa: F401

from leave_ledger.auth.models import RoleAssignment
from leave_ledger.core_hr.models import Employee
from leave_ledger.leave.models import Holiday, LeaveBalance, LeaveType

# ── SQLite compat: compile PG-specific types to TEXT/CHAR ───────────

from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles


@compiles(JSONB, "sqlite")
def _jsonb_sqlite(element, compiler, **kw):
    return "TEXT"


@compiles(PG_UUID, "sqlite")
def _uuid_sqlite(element, compiler, **kw):
    return "CHAR(36)"


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# Register PG-compatible functions for SQLite
@event.listens_for(engine.sync_engine, "connect")
def _register_sqlite_functions(dbapi_conn, connection_record):
    """Register NOW() and uuid_generate_v4() as SQLite custom functions."""
    dbapi_conn.create_function(
        "NOW", 0, lambda: datetime.now(timezone.utc).isoformat(),
    )
    dbapi_conn.create_function(
        "uuid_generate_v4", 0, lambda: str(uuid.uuid4()),
    )

TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    from leave_ledger.common.rate_limit import limiter
    try:
        # Clear the in-memory storage used by slowapi/limits
        if hasattr(limiter, '_storage'):
            limiter._storage.reset()
    except Exception:
        pass
    yield


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app():
    """Create a fresh app instance with DB dependency overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Database session (for direct DB operations in tests) ────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


@pytest.fixture
def session_factory() -> async_sessionmaker:
    """Factory for tests that need several independent sessions."""
    return TestSessionFactory


# ── Model factories ─────────────────────────────────────────────────

def _make_employee(
    *,
    email: Optional[str] = None,
    first_name: str = "Test",
    last_name: str = "User",
    reporting_manager_id: Optional[uuid.UUID] = None,
    date_of_joining: date = date(2024, 1, 15),
    is_active: bool = True,
) -> dict:
    code = uuid.uuid4().hex[:6].upper()
    return dict(
        id=uuid.uuid4(),
        employee_code=f"CF-{code}",
        first_name=first_name,
        last_name=last_name,
        email=email or f"user.{code.lower()}@creativefuel.io",
        reporting_manager_id=reporting_manager_id,
        date_of_joining=date_of_joining,
        is_active=is_active,
        created_at=datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )


async def _seed_employee(db: AsyncSession, **kwargs) -> Employee:
    emp = Employee(**_make_employee(**kwargs))
    db.add(emp)
    await db.commit()
    return emp


async def _seed_leave_type(
    db: AsyncSession,
    *,
    code: str = "pto",
    name: str = "Paid Time Off",
    default_entitlement: Decimal = Decimal("12"),
    is_paid: bool = True,
    accrues: bool = False,
    excludes_weekends: bool = True,
    excludes_holidays: bool = True,
    min_days_notice: int = 0,
    max_consecutive_days: Optional[int] = None,
    blocked_during_probation: bool = False,
    is_active: bool = True,
) -> LeaveType:
    lt = LeaveType(
        id=uuid.uuid4(),
        code=code,
        name=name,
        default_entitlement=default_entitlement,
        is_paid=is_paid,
        accrues=accrues,
        excludes_weekends=excludes_weekends,
        excludes_holidays=excludes_holidays,
        min_days_notice=min_days_notice,
        max_consecutive_days=max_consecutive_days,
        blocked_during_probation=blocked_during_probation,
        is_active=is_active,
        created_at=datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )
    db.add(lt)
    await db.commit()
    return lt


async def _seed_balance(
    db: AsyncSession,
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    *,
    year: int = 2026,
    entitlement: Decimal = Decimal("12"),
    accrued: Decimal = Decimal("12"),
    used: Decimal = Decimal("0"),
    pending: Decimal = Decimal("0"),
) -> LeaveBalance:
    bal = LeaveBalance(
        id=uuid.uuid4(),
        employee_id=employee_id,
        leave_type_id=leave_type_id,
        year=year,
        entitlement=entitlement,
        accrued=accrued,
        used=used,
        pending=pending,
        updated_at=datetime.now(timezone.utc),
    )
    db.add(bal)
    await db.commit()
    return bal


async def _seed_role(
    db: AsyncSession,
    employee_id: uuid.UUID,
    role: UserRole = UserRole.hr_admin,
) -> RoleAssignment:
    ra = RoleAssignment(
        id=uuid.uuid4(),
        employee_id=employee_id,
        role=role,
        is_active=True,
        assigned_at=datetime.now(timezone.utc),
    )
    db.add(ra)
    await db.commit()
    return ra


async def _seed_holiday(
    db: AsyncSession,
    on: date,
    *,
    name: str = "Public Holiday",
    is_optional: bool = False,
) -> Holiday:
    holiday = Holiday(
        id=uuid.uuid4(),
        date=on,
        name=name,
        is_optional=is_optional,
        created_at=datetime.now(timezone.utc),
    )
    db.add(holiday)
    await db.commit()
    return holiday


# ── Auth helpers ────────────────────────────────────────────────────

def create_access_token(
    employee_id: uuid.UUID,
    role: UserRole = UserRole.employee,
    expired: bool = False,
) -> str:
    """Generate a JWT access token for testing."""
    return auth_service.create_access_token(
        employee_id, role, expires_in_hours=-1 if expired else None,
    )


def auth_header(employee_id: uuid.UUID, role: UserRole = UserRole.employee) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(employee_id, role)}"}

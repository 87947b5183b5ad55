"""Shared test fixtures — async DB, client, factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Keep the email client in mock mode regardless of the developer's .env
os.environ["RESEND_API_KEY"] = ""

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

from leave_ledger.database import Base, get_db
from leave_ledger.main import create_app

# Import ALL model modules so every table is registered on Base.metadata
import leave_ledger.core.models  # noqa: F401
import leave_ledger.leave.models  # noqa: F401
import leave_ledger.comp_off.models  # noqa: F401
import leave_ledger.timesheets.models  # noqa: F401
import leave_ledger.notifications.models  # noqa: F401

from leave_ledger.core.models import Tenant, User
from leave_ledger.leave.models import Leave, LeaveBalance, LeaveType
from leave_ledger.timesheets.models import Timesheet

# ── SQLite compat: compile PG-specific types ────────────────────────

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


@event.listens_for(engine.sync_engine, "connect")
def _register_sqlite_functions(dbapi_conn, connection_record):
    """Register NOW() as a SQLite custom function."""
    dbapi_conn.create_function(
        "NOW", 0, lambda: datetime.now(timezone.utc).isoformat(),
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
        if hasattr(limiter, "_storage"):
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


# ── Model factories ─────────────────────────────────────────────────

async def make_tenant(db: AsyncSession, *, name: str = "Acme Corp") -> Tenant:
    tenant = Tenant(id=uuid.uuid4(), name=name)
    db.add(tenant)
    await db.flush()
    return tenant


async def make_user(
    db: AsyncSession,
    tenant: Tenant,
    *,
    email: Optional[str] = None,
    full_name: str = "Test User",
) -> User:
    user = User(
        id=uuid.uuid4(),
        tenant_id=tenant.id,
        email=email or f"user-{uuid.uuid4().hex[:8]}@acme.test",
        full_name=full_name,
        is_active=True,
    )
    db.add(user)
    await db.flush()
    return user


async def make_leave_type(
    db: AsyncSession,
    tenant: Tenant,
    *,
    name: str = "Annual Leave",
    annual_allowance: Decimal | int = 20,
    carry_forward: bool = False,
    max_carry_forward: Optional[Decimal | int] = None,
    is_comp_off: bool = False,
    is_active: bool = True,
) -> LeaveType:
    leave_type = LeaveType(
        id=uuid.uuid4(),
        tenant_id=tenant.id,
        name=name,
        annual_allowance=Decimal(annual_allowance),
        carry_forward=carry_forward,
        max_carry_forward=(
            Decimal(max_carry_forward) if max_carry_forward is not None else None
        ),
        is_comp_off=is_comp_off,
        is_paid=True,
        is_active=is_active,
    )
    db.add(leave_type)
    await db.flush()
    return leave_type


async def make_balance(
    db: AsyncSession,
    user: User,
    leave_type: LeaveType,
    *,
    year: int = 2026,
    allocated: Decimal | int = 10,
    carried_over: Decimal | int = 0,
    used: Decimal | int = 0,
    pending: Decimal | int = 0,
    remaining: Optional[Decimal | int] = None,
) -> LeaveBalance:
    allocated, carried_over = Decimal(allocated), Decimal(carried_over)
    used, pending = Decimal(used), Decimal(pending)
    balance = LeaveBalance(
        id=uuid.uuid4(),
        tenant_id=user.tenant_id,
        user_id=user.id,
        user_email=user.email,
        leave_type_id=leave_type.id,
        year=year,
        allocated=allocated,
        carried_over=carried_over,
        used=used,
        pending=pending,
        remaining=(
            Decimal(remaining) if remaining is not None
            else allocated + carried_over - used - pending
        ),
        version=1,
    )
    db.add(balance)
    await db.flush()
    return balance


async def make_leave(
    db: AsyncSession,
    user: User,
    leave_type: LeaveType,
    *,
    start_date: date,
    end_date: date,
    total_days: Decimal | int | float = 1,
    duration: str = "full_day",
    status: str = "approved",
) -> Leave:
    from leave_ledger.common.constants import LeaveDuration, LeaveStatus

    leave = Leave(
        id=uuid.uuid4(),
        tenant_id=user.tenant_id,
        user_id=user.id,
        user_email=user.email,
        leave_type_id=leave_type.id,
        start_date=start_date,
        end_date=end_date,
        total_days=Decimal(str(total_days)),
        duration=LeaveDuration(duration),
        status=LeaveStatus(status),
    )
    db.add(leave)
    await db.flush()
    return leave


async def make_timesheet(
    db: AsyncSession,
    user: User,
    day: date,
    *,
    hours: Decimal | int | float = 8,
    minutes: int = 0,
) -> Timesheet:
    entry = Timesheet(
        id=uuid.uuid4(),
        tenant_id=user.tenant_id,
        user_email=user.email,
        date=day,
        hours=Decimal(str(hours)),
        minutes=minutes,
    )
    db.add(entry)
    await db.flush()
    return entry


@pytest.fixture
async def tenant(db) -> Tenant:
    return await make_tenant(db)


@pytest.fixture
async def user(db, tenant) -> User:
    return await make_user(db, tenant, email="jane.doe@acme.test", full_name="Jane Doe")


@pytest.fixture
async def leave_type(db, tenant) -> LeaveType:
    return await make_leave_type(db, tenant)

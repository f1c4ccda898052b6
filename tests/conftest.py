"""Fixtures for the Leave Desk test suite.

Every test gets a fresh in-memory SQLite schema (via aiosqlite) shared by the
test session and the app's request sessions, plus factories for departments,
staff in each role, ledger rows and signed bearer tokens.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")

import uuid
from datetime import date, datetime, timedelta, timezone
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from leavedesk.common.constants import LeaveType, UserRole
from leavedesk.config import settings
from leavedesk.database import Base, get_db
from leavedesk.main import create_app
from leavedesk.notifications.service import Notifier, get_notifier

# Register every table on Base.metadata before create_all
import leavedesk.common.audit  # noqa: F401
import leavedesk.core_hr.models  # noqa: F401
import leavedesk.leave.models  # noqa: F401
import leavedesk.notifications.models  # noqa: F401

# ── PostgreSQL column types rendered for SQLite ─────────────────────

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


# Raw SQL in the services and models may call these PostgreSQL functions
@event.listens_for(engine.sync_engine, "connect")
def _register_sqlite_functions(dbapi_conn, connection_record):
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
    """Each test starts with empty slowapi buckets."""
    from leavedesk.common.rate_limit import limiter

    limiter.reset()
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


def _override_get_notifier() -> Notifier:
    return Notifier(session_factory=TestSessionFactory)


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app():
    """Create a fresh app instance with DB and notifier dependencies overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    application.dependency_overrides[get_notifier] = _override_get_notifier
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
def notifier() -> Notifier:
    """Outbox writing to the test database."""
    return Notifier(session_factory=TestSessionFactory)


# ── Dates ───────────────────────────────────────────────────────────

def future(days: int) -> date:
    """A date *days* from today (UTC)."""
    return datetime.now(timezone.utc).date() + timedelta(days=days)


CURRENT_YEAR = str(datetime.now(timezone.utc).year)


# ── Model factories ─────────────────────────────────────────────────

def _make_department(
    *,
    name: str = "Engineering",
    coordinator_id: Optional[uuid.UUID] = None,
) -> dict:
    return dict(
        id=uuid.uuid4(),
        name=name,
        description=f"{name} department",
        coordinator_id=coordinator_id,
        is_active=True,
        created_at=datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )


def _make_employee(
    *,
    name: str = "Test User",
    email: Optional[str] = None,
    role: UserRole = UserRole.employee,
    department_id: Optional[uuid.UUID] = None,
    manager_id: Optional[uuid.UUID] = None,
    is_active: bool = True,
) -> dict:
    code = f"EMP-{uuid.uuid4().hex[:6].upper()}"
    return dict(
        id=uuid.uuid4(),
        employee_code=code,
        name=name,
        email=email or f"{code.lower()}@leavedesk.io",
        role=role,
        position=role.value.title(),
        department_id=department_id,
        manager_id=manager_id,
        is_active=is_active,
        created_at=datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )


async def _seed_employee(db: AsyncSession, **kwargs):
    """Insert an employee and return the ORM instance."""
    from leavedesk.core_hr.models import Employee

    emp = Employee(**_make_employee(**kwargs))
    db.add(emp)
    await db.flush()
    return emp


async def _seed_balance(
    db: AsyncSession,
    employee_id: uuid.UUID,
    *,
    leave_type: LeaveType = LeaveType.vacation,
    total_allocated: int = 10,
    used: int = 0,
    academic_year: str = CURRENT_YEAR,
):
    """Insert a ledger row and return the ORM instance."""
    from leavedesk.leave.models import LeaveBalance

    balance = LeaveBalance(
        id=uuid.uuid4(),
        employee_id=employee_id,
        academic_year=academic_year,
        leave_type=leave_type,
        total_allocated=total_allocated,
        used=used,
    )
    db.add(balance)
    await db.flush()
    return balance


@pytest.fixture
async def test_department(db) -> dict:
    """Insert a test department."""
    from leavedesk.core_hr.models import Department

    data = _make_department()
    db.add(Department(**data))
    await db.flush()
    return data


@pytest.fixture
async def manager(db, test_department):
    return await _seed_employee(
        db, name="Maya Manager", role=UserRole.manager,
        department_id=test_department["id"],
    )


@pytest.fixture
async def coordinator(db, test_department):
    return await _seed_employee(
        db, name="Cody Coordinator", role=UserRole.coordinator,
        department_id=test_department["id"],
    )


@pytest.fixture
async def admin(db):
    return await _seed_employee(db, name="Ada Admin", role=UserRole.admin)


@pytest.fixture
async def employee(db, test_department, manager):
    """Active employee reporting to ``manager``."""
    return await _seed_employee(
        db, name="Eve Employee", department_id=test_department["id"],
        manager_id=manager.id,
    )


# ── Auth helpers ────────────────────────────────────────────────────

# The service only verifies tokens; their lifetime is the issuer's concern
TOKEN_LIFETIME = timedelta(hours=24)


def create_access_token(
    employee_id: uuid.UUID,
    expired: bool = False,
) -> str:
    """Generate a JWT access token for testing."""
    if expired:
        exp = datetime.now(timezone.utc) - timedelta(hours=1)
    else:
        exp = datetime.now(timezone.utc) + TOKEN_LIFETIME
    payload = {
        "sub": str(employee_id),
        "type": "access",
        "exp": exp,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def auth_headers(emp) -> dict[str, str]:
    """Bearer headers for an employee (ORM instance or factory dict)."""
    emp_id = emp["id"] if isinstance(emp, dict) else emp.id
    return {"Authorization": f"Bearer {create_access_token(emp_id)}"}

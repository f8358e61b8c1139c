"""Shared test fixtures — async DB, client, auth helpers, factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")
os.environ.setdefault("ENVIRONMENT", "test")

import uuid
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from hrdesk.auth.models import User
from hrdesk.common.constants import LeaveType, OnboardingStatus, UserRole
from hrdesk.config import settings
from hrdesk.database import Base, get_db
from hrdesk.main import create_app
from hrdesk.notifications.service import Notifier, set_notifier

# Import ALL model modules so SQLAlchemy can resolve cross-module relationships
import hrdesk.auth.models  # noqa: F401
import hrdesk.common.audit  # noqa: F401
import hrdesk.common.sequences  # noqa: F401
import hrdesk.helpdesk.models  # noqa: F401
import hrdesk.holidays.models  # noqa: F401
import hrdesk.leave.models  # noqa: F401
import hrdesk.onboarding.models  # noqa: F401

from hrdesk.leave.models import LeaveBalance
from hrdesk.onboarding.models import Employee

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
    from hrdesk.common.rate_limit import limiter

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


# ── Outbound mail capture ───────────────────────────────────────────

class RecordingNotifier(Notifier):
    """Keeps every sent message in memory as ``(to, subject, body)``."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []

    async def send(self, to: str, subject: str, body: str) -> None:
        self.sent.append((to, subject, body))

    def to(self, address: str) -> list[tuple[str, str, str]]:
        return [m for m in self.sent if m[0] == address]


@pytest.fixture(autouse=True)
def outbox() -> RecordingNotifier:
    """Install a recording notifier for the duration of a test."""
    recorder = RecordingNotifier()
    previous = set_notifier(recorder)
    yield recorder
    set_notifier(previous)


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

async def _make_user(
    db: AsyncSession,
    *,
    email: Optional[str] = None,
    name: str = "Test User",
    role: UserRole = UserRole.employee,
    is_active: bool = True,
) -> User:
    user = User(
        email=email or f"user.{uuid.uuid4().hex[:8]}@acme.com",
        name=name,
        role=role,
        is_active=is_active,
        is_onboarded=role != UserRole.employee,
    )
    db.add(user)
    await db.flush()
    return user


async def _make_employee(
    db: AsyncSession,
    *,
    email: Optional[str] = None,
    first_name: str = "Test",
    last_name: str = "User",
    status: OnboardingStatus = OnboardingStatus.approved,
    code: Optional[str] = None,
    balances: Optional[dict[LeaveType, int]] = None,
) -> Employee:
    """Insert a user + employee with one balance row per leave type."""
    user = await _make_user(db, email=email, name=f"{first_name} {last_name}")
    user.is_onboarded = status in (OnboardingStatus.submitted, OnboardingStatus.approved)
    employee = Employee(
        user_id=user.id,
        personal_email=f"personal.{user.email}",
        official_email=user.email,
        first_name=first_name,
        last_name=last_name,
        onboarding_status=status,
        employee_code=code,
    )
    db.add(employee)
    await db.flush()

    allotments = dict(settings.default_leave_balances)
    for leave_type, days in (balances or {}).items():
        allotments[leave_type.value] = days
    for leave_type in LeaveType:
        db.add(
            LeaveBalance(
                employee_id=employee.id,
                leave_type=leave_type,
                allotted=allotments[leave_type.value],
            )
        )
    await db.flush()
    return employee


@pytest.fixture
def make_employee(db):
    """Factory fixture: ``await make_employee(email=..., status=...)``."""

    async def _factory(**kwargs) -> Employee:
        emp = await _make_employee(db, **kwargs)
        await db.commit()
        return emp

    return _factory


@pytest.fixture
def make_user(db):
    async def _factory(**kwargs) -> User:
        user = await _make_user(db, **kwargs)
        await db.commit()
        return user

    return _factory


@pytest.fixture
async def hr_user(db) -> User:
    user = await _make_user(db, email="hr.lead@acme.com", name="Hana HR", role=UserRole.hr)
    await db.commit()
    return user


@pytest.fixture
async def admin_user(db) -> User:
    user = await _make_user(db, email="admin@acme.com", name="Ada Admin", role=UserRole.admin)
    await db.commit()
    return user


@pytest.fixture
async def employee(db) -> Employee:
    """An onboarded employee with default balances."""
    emp = await _make_employee(
        db, email="jane.doe@acme.com", first_name="Jane", last_name="Doe",
        code="EMP90001",
    )
    await db.commit()
    return emp


@pytest.fixture
async def pending_employee(db) -> Employee:
    """An invited employee who has not completed onboarding."""
    emp = await _make_employee(
        db, email="new.hire@acme.com", first_name="New", last_name="Hire",
        status=OnboardingStatus.pending,
    )
    await db.commit()
    return emp


# ── Auth helpers ────────────────────────────────────────────────────

def create_access_token(
    user_id: uuid.UUID,
    role: UserRole = UserRole.employee,
    expired: bool = False,
) -> str:
    """Generate a JWT access token for testing."""
    if expired:
        exp = datetime.now(timezone.utc) - timedelta(hours=1)
    else:
        exp = datetime.now(timezone.utc) + timedelta(hours=1)
    payload = {
        "sub": str(user_id),
        "role": role.value,
        "type": "access",
        "exp": exp,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def _bearer(user_id: uuid.UUID, role: UserRole = UserRole.employee) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id, role)}"}


@pytest.fixture
def auth_headers():
    """``auth_headers(user)`` builds Bearer headers for any User."""

    def _headers(
        user: User,
        *,
        expired: bool = False,
        role: Optional[UserRole] = None,
    ) -> dict[str, str]:
        token = create_access_token(user.id, role or user.role, expired=expired)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def hr_headers(hr_user) -> dict[str, str]:
    return _bearer(hr_user.id, UserRole.hr)


@pytest.fixture
def employee_headers(employee) -> dict[str, str]:
    return _bearer(employee.user_id)

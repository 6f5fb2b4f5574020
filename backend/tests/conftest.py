"""Pytest configuration and shared fixtures.

This module provides centralized test fixtures for:
- Test database engine and sessions (in-memory SQLite unless DATABASE_TEST_URL is set)
- HTTP client for API testing
- Seeded users, auth sessions, professional profiles and a dependent
- A recording notification dispatcher and a fixed clock
"""

import os
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import careteam.models  # noqa: F401
from careteam.actors import Actor
from careteam.database import Base, enable_sqlite_savepoints, get_db
from careteam.main import app
from careteam.models.auth import AuthSession, AuthUser
from careteam.models.care_record import Gender
from careteam.models.dependent import Dependent
from careteam.models.professional import ProfessionalProfile
from careteam.services.care_records import CareTeamService
from careteam.services.directory import SqlProfessionalDirectory
from careteam.services.linker import RecordLinker
from careteam.services.scheduler import AppointmentScheduler

# Service tests run "now" at this instant; bookings in March 2025 are in the future.
NOW = datetime(2025, 2, 1, 12, 0, tzinfo=timezone.utc)

GUARDIAN_ID = "guardian-1"
OTHER_GUARDIAN_ID = "guardian-2"
PATIENT_ID = "patient-1"
DOCTOR_ID = "doctor-1"
THERAPIST_ID = "therapist-1"
THERAPIST_2_ID = "therapist-2"
INACTIVE_THERAPIST_ID = "therapist-inactive"
TEACHER_ID = "teacher-1"
ADMIN_ID = "admin-1"

USERS = {
    GUARDIAN_ID: "guardian",
    OTHER_GUARDIAN_ID: "guardian",
    PATIENT_ID: "patient",
    DOCTOR_ID: "doctor",
    THERAPIST_ID: "therapist",
    THERAPIST_2_ID: "therapist",
    INACTIVE_THERAPIST_ID: "therapist",
    TEACHER_ID: "teacher",
    ADMIN_ID: "admin",
}


def fixed_clock() -> datetime:
    return NOW


def token_for(user_id: str) -> str:
    return f"token-{user_id}"


def auth_headers(user_id: str) -> dict[str, str]:
    """Authentication headers for API requests as ``user_id``."""
    return {"Authorization": f"Bearer {token_for(user_id)}"}


def actor(user_id: str) -> Actor:
    return Actor(id=user_id, role=USERS[user_id])


class RecordingNotifier:
    """Notification dispatcher that keeps every event, or fails on demand."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.events: list[tuple[str, str, dict[str, Any]]] = []

    async def notify(self, event_kind: str, recipient_id: str, payload: dict[str, Any]) -> None:
        if self.fail:
            raise RuntimeError("notification transport unavailable")
        self.events.append((event_kind, recipient_id, payload))

    def kinds(self) -> list[str]:
        return [kind for kind, _, _ in self.events]


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def test_engine():
    """Create test database engine with automatic schema management.

    Creates all tables before tests, drops them after. Uses DATABASE_TEST_URL
    if set (e.g. a PostgreSQL test database in CI), otherwise an in-memory
    SQLite database shared through a single connection.
    """
    db_url = os.environ.get("DATABASE_TEST_URL")
    if db_url:
        engine = create_async_engine(db_url, echo=False)
    else:
        engine = create_async_engine(
            "sqlite+aiosqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        enable_sqlite_savepoints(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncSession:
    """Create test database session with automatic rollback.

    Each test gets a fresh session that rolls back on completion,
    ensuring test isolation.
    """
    session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with session_maker() as session:
        yield session
        await session.rollback()


# =============================================================================
# Seed Data
# =============================================================================


@pytest_asyncio.fixture
async def seeded(db_session: AsyncSession) -> dict[str, Any]:
    """Users with bearer sessions, professional profiles and one dependent."""
    created = NOW - timedelta(days=30)
    for user_id, role in USERS.items():
        db_session.add(
            AuthUser(
                id=user_id,
                name=user_id.replace("-", " ").title(),
                email=f"{user_id}@example.com",
                emailVerified=True,
                role=role,
                dateOfBirth=date(1990, 1, 1) if role == "patient" else None,
                gender="female" if role == "patient" else None,
                createdAt=created,
                updatedAt=created,
            )
        )
        db_session.add(
            AuthSession(
                id=f"session-{user_id}",
                token=token_for(user_id),
                userId=user_id,
                expiresAt=datetime.now(timezone.utc) + timedelta(days=7),
                createdAt=created,
                updatedAt=created,
            )
        )

    db_session.add_all(
        [
            ProfessionalProfile(
                user_id=DOCTOR_ID,
                role="doctor",
                specialization="Pediatrics",
                fee_online=Decimal("80.00"),
                fee_offline=Decimal("100.00"),
                session_duration_minutes=30,
            ),
            ProfessionalProfile(
                user_id=THERAPIST_ID,
                role="therapist",
                specialization="Speech therapy",
                fee_online=Decimal("40.00"),
                fee_offline=Decimal("50.00"),
            ),
            ProfessionalProfile(
                user_id=THERAPIST_2_ID,
                role="therapist",
                specialization="Occupational therapy",
                fee_online=Decimal("45.00"),
                fee_offline=Decimal("55.00"),
            ),
            ProfessionalProfile(
                user_id=INACTIVE_THERAPIST_ID,
                role="therapist",
                is_active=False,
            ),
        ]
    )

    dependent = Dependent(
        guardian_id=GUARDIAN_ID,
        name="Sam Rivera",
        date_of_birth=date(2018, 6, 15),
        gender=Gender.MALE,
    )
    other_dependent = Dependent(
        guardian_id=OTHER_GUARDIAN_ID,
        name="Alex Chen",
        date_of_birth=date(2019, 2, 3),
        gender=Gender.FEMALE,
    )
    db_session.add_all([dependent, other_dependent])
    await db_session.flush()

    return {"dependent": dependent, "other_dependent": other_dependent}


# =============================================================================
# Service Fixtures
# =============================================================================


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def scheduler(db_session, notifier) -> AppointmentScheduler:
    """Scheduler with the record linker wired in and a fixed clock."""
    return AppointmentScheduler(
        db_session,
        SqlProfessionalDirectory(db_session),
        notifier,
        linker=RecordLinker(db_session, notifier, clock=fixed_clock),
        clock=fixed_clock,
    )


@pytest.fixture
def care_team(db_session, notifier) -> CareTeamService:
    return CareTeamService(
        db_session,
        SqlProfessionalDirectory(db_session),
        notifier,
        clock=fixed_clock,
    )


# =============================================================================
# HTTP Client Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def client(db_session, notifier):
    """Async test client for the FastAPI app.

    Requests share the test's session, so seeded rows are visible without
    committing and everything rolls back when the test ends.
    """

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.state.notifier = notifier

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.pop(get_db, None)
    del app.state.notifier

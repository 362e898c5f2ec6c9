import os
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import date, timedelta
from itertools import count
from typing import Any
from uuid import UUID

import pytest
import pytest_asyncio
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("LOG_FORMAT", "console")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import insert  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from app.core.security import create_access_token  # noqa: E402
from app.database import build_async_engine, get_db  # noqa: E402
from app.dependencies import get_clinic_today  # noqa: E402
from app.main import app  # noqa: E402
from app.models import (  # noqa: E402
    appointments,
    departments,
    doctor_departments,
    doctor_schedules,
    doctors,
    metadata,
    users,
)
from app.services.scheduling.slots import calculate_slot_time  # noqa: E402

# Friday; the following Monday is 2025-06-02
TODAY = date(2025, 5, 30)
MONDAY = date(2025, 6, 2)

# Set TEST_DATABASE_URL to run against PostgreSQL instead of a throw-away SQLite file
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

_sequence = count(1)


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def monday() -> date:
    return MONDAY


@pytest_asyncio.fixture
async def test_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh schema for every test."""
    url = TEST_DATABASE_URL or f"sqlite:///{tmp_path / 'queue_test.db'}"
    engine = build_async_engine(url, echo=False, poolclass=NullPool)

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
        await conn.run_sync(metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Independent sessions, e.g. for concurrent writers."""
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clinic_today] = lambda: TODAY

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session: AsyncSession) -> Callable[..., Awaitable[dict[str, Any]]]:
    """Factory inserting a user row."""

    async def _make_user(full_name: str | None = None, role: str = "patient") -> dict[str, Any]:
        n = next(_sequence)
        result = await db_session.execute(
            insert(users)
            .values(
                email=f"user{n}@hospital.test",
                full_name=full_name or f"Patient {n}",
                role=role,
                is_active=True,
            )
            .returning(users)
        )
        user = dict(result.mappings().first())
        await db_session.commit()
        return user

    return _make_user


@pytest.fixture
def make_department(db_session: AsyncSession) -> Callable[..., Awaitable[dict[str, Any]]]:
    """Factory inserting a department row."""

    async def _make_department(name: str, slug: str, is_active: bool = True) -> dict[str, Any]:
        result = await db_session.execute(
            insert(departments)
            .values(name=name, slug=slug, is_active=is_active)
            .returning(departments)
        )
        department = dict(result.mappings().first())
        await db_session.commit()
        return department

    return _make_department


@pytest.fixture
def make_doctor(
    db_session: AsyncSession, make_user: Callable[..., Awaitable[dict[str, Any]]]
) -> Callable[..., Awaitable[dict[str, Any]]]:
    """
    Factory inserting a doctor with its user row and department links.

    ``shift`` is a ``(start, end)`` pair applied Monday to Friday; without it
    the configured default shift applies.
    """

    async def _make_doctor(
        department_ids: list[UUID],
        full_name: str | None = None,
        is_active: bool = True,
        shift: tuple[str, str] | None = None,
        consultation_duration_minutes: int | None = None,
    ) -> dict[str, Any]:
        user = await make_user(full_name=full_name or f"Doctor {next(_sequence)}", role="doctor")
        result = await db_session.execute(
            insert(doctors)
            .values(
                user_id=user["id"],
                specialization="General Practitioner",
                consultation_duration_minutes=consultation_duration_minutes,
                is_active=is_active,
            )
            .returning(doctors)
        )
        doctor = dict(result.mappings().first())
        for department_id in department_ids:
            await db_session.execute(
                insert(doctor_departments).values(doctor_id=doctor["id"], department_id=department_id)
            )
        if shift:
            await db_session.execute(
                insert(doctor_schedules),
                [
                    {
                        "doctor_id": doctor["id"],
                        "day_of_week": day,
                        "start_time": shift[0],
                        "end_time": shift[1],
                    }
                    for day in range(5)
                ],
            )
        await db_session.commit()
        doctor["full_name"] = user["full_name"]
        return doctor

    return _make_doctor


@pytest.fixture
def make_appointment(
    db_session: AsyncSession, make_user: Callable[..., Awaitable[dict[str, Any]]]
) -> Callable[..., Awaitable[dict[str, Any]]]:
    """Factory inserting an appointment row directly, bypassing the scheduler."""

    async def _make_appointment(
        doctor: dict[str, Any],
        on_date: date,
        queue_number: int,
        patient: dict[str, Any] | None = None,
        status: str = "scheduled",
        department_id: UUID | None = None,
    ) -> dict[str, Any]:
        patient = patient or await make_user()
        result = await db_session.execute(
            insert(appointments)
            .values(
                patient_id=patient["id"],
                doctor_id=doctor["id"],
                department_id=department_id,
                appointment_date=on_date,
                appointment_time=calculate_slot_time(queue_number),
                queue_number=queue_number,
                status=status,
                reason="Routine check",
            )
            .returning(appointments)
        )
        appointment = dict(result.mappings().first())
        await db_session.commit()
        return appointment

    return _make_appointment


@pytest_asyncio.fixture
async def department(make_department) -> dict[str, Any]:
    return await make_department("General Medicine", "general-medicine")


@pytest_asyncio.fixture
async def doctor(make_doctor, department) -> dict[str, Any]:
    return await make_doctor([department["id"]], full_name="Tendai Moyo")


@pytest_asyncio.fixture
async def patient(make_user) -> dict[str, Any]:
    return await make_user(full_name="Test Patient")


@pytest_asyncio.fixture
async def staff_user(make_user) -> dict[str, Any]:
    return await make_user(full_name="Front Desk", role="receptionist")


def token_headers(user: dict[str, Any]) -> dict[str, str]:
    """Create authentication headers for a user."""
    token = create_access_token(
        data={"sub": str(user["id"]), "email": user["email"]},
        expires_delta=timedelta(minutes=30),
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers(patient) -> dict[str, str]:
    """Authentication headers for the default patient."""
    return token_headers(patient)


@pytest.fixture
def staff_headers(staff_user) -> dict[str, str]:
    """Authentication headers for a receptionist."""
    return token_headers(staff_user)


@pytest.fixture
def headers_for() -> Callable[[dict[str, Any]], dict[str, str]]:
    return token_headers

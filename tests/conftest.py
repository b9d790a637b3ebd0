"""Shared pytest fixtures for AcademicAlly tests."""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("EXPIRY_SWEEP_ENABLED", "false")

import itertools
import uuid
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import academically.models  # noqa: F401  (registers every table on Base.metadata)
from academically.database import Base
from academically.schemas.profile import Location, StudyPreferences, UserProfile
from academically.schemas.user import UserCreate
from academically.services.directory_service import UserDirectory


class FakeClock:
    """Deterministic clock; call it to read the time, ``advance`` to move it."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc))


# ── Database ─────────────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


# ── Students ─────────────────────────────────────────────────────────────────

_email_counter = itertools.count(1)


def student_payload(**overrides) -> UserCreate:
    """A verified CS student; override any ``UserCreate`` field."""
    fields = {
        "email": f"student{next(_email_counter)}@example.edu",
        "display_name": "Student",
        "university": "State University",
        "year": "2nd Year",
        "major": "Computer Science",
        "courses": ["CS101", "MATH201"],
        "study_preferences": StudyPreferences(
            study_intensity=3,
            preferred_group_size=2,
            study_environment="quiet",
            study_methods=["flashcards", "practice_problems"],
            study_location="in_person",
            academic_goals=["pass_exams"],
        ),
        "availability": {"monday": ["morning", "evening"], "wednesday": ["evening"]},
        "location": Location(campus="Main", city="Springfield", state="IL"),
        "verified": True,
    }
    fields.update(overrides)
    return UserCreate(**fields)


@pytest.fixture
def create_student(db_session):
    """Async factory: ``user = await create_student(courses=[...])``."""
    directory = UserDirectory(db_session)

    async def _create(**overrides):
        return await directory.create_user(student_payload(**overrides))

    return _create


@pytest.fixture
def make_profile():
    """Factory for in-memory ``UserProfile`` values (no database)."""

    def _make(**overrides) -> UserProfile:
        fields = {
            "id": uuid.uuid4(),
            "display_name": "Student",
            "university": "State University",
            "major": "Computer Science",
            "year": "2nd Year",
            "courses": ["CS101"],
        }
        fields.update(overrides)
        return UserProfile(**fields)

    return _make

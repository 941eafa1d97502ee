"""
Shared test fixtures.

Uses a file-backed SQLite database (via aiosqlite) so tests run without
Docker / PostgreSQL / Redis.  The production models are used as-is:
``UTCDateTime`` stores naive UTC on SQLite and ``FOR UPDATE`` is a no-op
there, while the conditional ``UPDATE`` seat guard still applies.
"""

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from rideshare.domain.entities import Actor
from rideshare.domain.enums import GenderPreference
from rideshare.infrastructure.database import Base
from rideshare.infrastructure.models import UserModel
from rideshare.services.directory import DirectoryService
from rideshare.services.rides import RideService

REALM = "campus-a"
OTHER_REALM = "campus-b"

# Fixed "now" so staleness and retention assertions are exact.
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def fixed_clock():
    return NOW


# ── Database ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Fresh schema per test; a file DB lets separate sessions run side by side."""
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'rides.db'}", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def directory(session_factory):
    return DirectoryService(session_factory)


@pytest.fixture
def service(db_session, directory):
    return RideService(db_session, directory, clock=fixed_clock)


# ── Actors ────────────────────────────────────────────────────────────


@pytest.fixture
def creator():
    return Actor(id="creator", realm_id=REALM, name="Casey Creator", gender="Male")


@pytest.fixture
def alice():
    return Actor(id="alice", realm_id=REALM, name="Alice", gender="Female")


@pytest.fixture
def bob():
    return Actor(id="bob", realm_id=REALM, name="Bob", gender="Male")


@pytest.fixture
def outsider():
    return Actor(id="mallory", realm_id=OTHER_REALM, name="Mallory", gender="Female")


@pytest_asyncio.fixture
async def users(session_factory):
    """Directory rows for the standard actors."""
    async with session_factory() as session:
        session.add_all(
            [
                UserModel(id="creator", realm_id=REALM, name="Casey Creator",
                          email="casey@example.edu", gender="Male"),
                UserModel(id="alice", realm_id=REALM, name="Alice",
                          email="alice@example.edu", phone="555-0101",
                          department="CSE", year="2", gender="Female"),
                UserModel(id="bob", realm_id=REALM, name="Bob",
                          email="bob@example.edu", gender="Male"),
            ]
        )
        await session.commit()


# ── Helpers ───────────────────────────────────────────────────────────


async def make_ride(
    service: RideService,
    creator: Actor,
    *,
    seats: int = 2,
    departs_in: timedelta = timedelta(days=1),
    gender: GenderPreference = GenderPreference.ANY,
    allow_chat: bool = True,
    from_location: str = "Main Gate",
    to_location: str = "Airport T2",
):
    return await service.create_ride(
        creator,
        from_location=from_location,
        to_location=to_location,
        available_seats=seats,
        date_time=NOW + departs_in,
        preferred_gender=gender,
        allow_chat=allow_chat,
    )

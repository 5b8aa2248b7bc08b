"""
Pytest fixtures for test database, client, and authentication.

Every test gets a fresh schema. The default database is in-memory SQLite
(one shared connection through StaticPool); point TEST_DATABASE_URL at a
PostgreSQL database to run the same suite with advisory slot locks enabled.
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ["REDIS_ENABLED"] = "false"
os.environ["EMAIL_ENABLED"] = "false"
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator
from uuid import UUID

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from arts_booking.core.security import CurrentUser, create_access_token
from arts_booking.db.base import Base
from arts_booking.db.session import build_engine, get_db
from arts_booking.main import app
from arts_booking.models.booking import Booking
from arts_booking.models.resource import Resource
from arts_booking.schemas.group_booking import GroupBookingCreate
from arts_booking.services import group_booking_service

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")

# Far enough ahead that "must be in the future" checks always pass
BASE_TIME = datetime(2030, 1, 15, 9, 0, tzinfo=timezone.utc)


def at(hour: int, minute: int = 0, day_offset: int = 0) -> datetime:
    return BASE_TIME.replace(hour=hour, minute=minute) + timedelta(days=day_offset)


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create tables, yield session, then drop tables for isolation."""
    engine = build_engine(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client that overrides the DB dependency with the test session."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def headers_for(user: CurrentUser) -> dict:
    """Authorization headers carrying a token for `user`."""
    claims = {"sub": user.user_id}
    if user.email:
        claims["email"] = user.email
    if user.name:
        claims["name"] = user.name
    return {"Authorization": f"Bearer {create_access_token(data=claims)}"}


@pytest.fixture
def organizer() -> CurrentUser:
    return CurrentUser(user_id="organizer-1", email="organizer@example.com", name="Olive Organizer")


@pytest.fixture
def alice() -> CurrentUser:
    return CurrentUser(user_id="user-alice", email="alice@example.com", name="Alice")


@pytest.fixture
def bob() -> CurrentUser:
    return CurrentUser(user_id="user-bob", email="bob@example.com", name="Bob")


@pytest.fixture
def carol() -> CurrentUser:
    return CurrentUser(user_id="user-carol", email="carol@example.com", name="Carol")


@pytest.fixture
def auth_headers(organizer: CurrentUser) -> dict:
    return headers_for(organizer)


@pytest_asyncio.fixture
async def studio(db_session: AsyncSession) -> Resource:
    """An active, bookable resource with a default host."""
    resource = Resource(
        id="room-1",
        organization_id="org-1",
        type="space",
        title="Recording Studio A",
        capacity=4,
        meta={"host": "Sam Host"},
    )
    db_session.add(resource)
    await db_session.commit()
    return resource


@pytest.fixture
def booking_factory(db_session: AsyncSession):
    """Insert a booking row directly, bypassing the services."""

    async def make(
        start: datetime,
        end: datetime,
        resource_id: str = "room-1",
        status: str = "confirmed",
        organization_id: str = "org-1",
        **fields,
    ) -> Booking:
        capacity = fields.pop("capacity", 1)
        booking = Booking(
            organization_id=organization_id,
            resource_id=resource_id,
            title=fields.pop("title", "Existing session"),
            start_time=start,
            end_time=end,
            status=status,
            capacity=capacity,
            current_participants=0,
            available_spots=capacity,
            **fields,
        )
        db_session.add(booking)
        await db_session.commit()
        return booking

    return make


@pytest.fixture
def group_booking_factory(db_session: AsyncSession, organizer: CurrentUser):
    """Create a group booking through the orchestrator and return its id."""

    async def make(capacity: int = 2, waitlist_enabled: bool = False, **fields) -> UUID:
        payload = GroupBookingCreate(
            organization_id=fields.pop("organization_id", "org-1"),
            resource_id=fields.pop("resource_id", "room-1"),
            title=fields.pop("title", "Figure Drawing Workshop"),
            start_time=fields.pop("start_time", at(18)),
            end_time=fields.pop("end_time", at(20)),
            capacity=capacity,
            waitlist_enabled=waitlist_enabled,
            **fields,
        )
        result = await group_booking_service.create_group_booking(db_session, payload, organizer)
        assert result.success, result.error
        return UUID(result.data["booking_id"])

    return make


@pytest.fixture
def ledger(db_session: AsyncSession):
    """Read a booking's counters fresh from the database and check they balance."""

    async def check(booking_id: UUID) -> Booking:
        result = await db_session.execute(
            select(Booking).where(Booking.id == booking_id).execution_options(populate_existing=True)
        )
        booking = result.scalar_one()
        assert booking.current_participants + booking.available_spots == booking.capacity
        assert 0 <= booking.current_participants <= booking.capacity
        return booking

    return check

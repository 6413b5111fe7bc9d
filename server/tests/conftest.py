"""Test configuration and fixtures."""

from datetime import date, datetime, timedelta, timezone
from typing import Optional
from uuid import UUID, uuid4

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from tripslots.core.config import settings
from tripslots.core.database import Base, get_db
from tripslots.core.dependencies import get_notification_dispatcher
from tripslots.models import *  # noqa: F403 - Import all models
from tripslots.models import Booking, Package
from tripslots.schemas.common import GuestDetail
from tripslots.schemas.slot import CreateSlotRequest
from tripslots.services.notifications import InMemoryNotificationDispatcher
from tripslots.services.slot_service import SlotService

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

DESTINATION_ID = UUID("5b0c7a52-8f0e-4f7e-9d55-3f1f5d0f2a11")
DESTINATION_NAME = "Goa"


def future_date(days: int = 21) -> date:
    return date.today() + timedelta(days=days)


def guests(*ages: int) -> list[GuestDetail]:
    return [GuestDetail(age=age) for age in ages]


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_session(test_engine):
    """Create a test database session."""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with async_session() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def file_engine(tmp_path):
    """File-backed SQLite engine so concurrent tasks get their own connections."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'slots.db'}",
        echo=False,
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(file_engine):
    """Session factory over the file-backed engine, one session per simulated request."""
    return async_sessionmaker(
        file_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
def outbox():
    """In-memory notification dispatcher collecting published events."""
    return InMemoryNotificationDispatcher()


@pytest_asyncio.fixture(scope="function")
async def test_app(test_session, outbox):
    """Create a test FastAPI application backed by the in-memory database."""
    from tripslots.main import create_app

    app = create_app()

    # Override database dependency
    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_dispatcher] = lambda: outbox

    yield app

    # Clean up
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def make_token(user_id: str, roles: Optional[list[str]] = None, expires_in: int = 3600) -> str:
    """Sign a bearer token the way the identity provider would."""
    payload = {
        "sub": user_id,
        "username": user_id,
        "roles": roles or [],
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
    }
    return jwt.encode(payload, settings.bearer_token_secret, algorithm="HS256")


@pytest.fixture
def auth_headers():
    """Build Authorization headers for a user id and optional roles."""
    def _headers(user_id: str, roles: Optional[list[str]] = None) -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(user_id, roles)}"}
    return _headers


async def add_package(session: AsyncSession, **overrides) -> Package:
    values = {
        "title": "Goa Beach Escape",
        "duration": "4D/3N",
        "category": "beach",
        "package_type": "group",
        "features": ["beach", "adventure sports", "nightlife"],
        "price_adult": 1000,
        "price_child": 500,
        "price_infant": 0,
        "price_currency": "INR",
    }
    values.update(overrides)
    package = Package(**values)
    session.add(package)
    await session.commit()
    return package


async def add_booking(
    session: AsyncSession,
    package: Package,
    user_id: str,
    guest_count: int = 1,
    trip_date: Optional[date] = None,
) -> Booking:
    booking = Booking(
        id=uuid4(),
        package_id=package.id,
        user_id=user_id,
        trip_date=trip_date or future_date(),
        guest_count=guest_count,
        guest_details=[{"age": 30} for _ in range(guest_count)],
        base_amount=package.price_adult * guest_count,
        final_amount=package.price_adult * guest_count,
    )
    session.add(booking)
    await session.commit()
    return booking


async def open_slot(
    session: AsyncSession,
    package: Package,
    creator_id: str = "creator-1",
    ages: tuple[int, ...] = (30,),
    max_capacity: int = 4,
    trip_date: Optional[date] = None,
    destination_id: UUID = DESTINATION_ID,
    dispatcher: Optional[InMemoryNotificationDispatcher] = None,
):
    """Create a slot through the service with a seed booking for `creator_id`."""
    service = SlotService(session, dispatcher=dispatcher)
    return await service.create_slot(
        CreateSlotRequest(
            package_id=package.id,
            destination_id=destination_id,
            destination_name=DESTINATION_NAME,
            trip_date=trip_date or future_date(),
            guest_details=guests(*ages),
            max_capacity=max_capacity,
        ),
        creator_id=creator_id,
    )


@pytest_asyncio.fixture
async def package(test_session):
    """Package priced at 1000 per adult and 500 per child."""
    return await add_package(test_session)


@pytest.fixture
def make_package():
    """`await make_package(session, **overrides)`"""
    return add_package


@pytest.fixture
def make_booking():
    """`await make_booking(session, package, user_id, guest_count=1)`"""
    return add_booking


@pytest.fixture
def make_slot():
    """`await make_slot(session, package, creator_id=..., ages=(30,), max_capacity=4)`"""
    return open_slot

"""Service test fixtures — async DB, seeded swaps, coordinator and FastAPI test client.

Invariants:
    - Every test gets a fresh in-memory SQLite database
    - get_db dependency overridden to use the test session factory
    - The rate limiter is reset around every client test
    - Coordinator and views share a fixed clock (NOW)

Design Decisions:
    - SQLite in-memory with StaticPool: every session sees the same database;
      FOR UPDATE and the advisory lock are no-ops there, the partial unique
      indexes still apply
    - RecordingNotifier instead of mocks: asserts on what was delivered after commit
"""

from datetime import datetime, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession, async_sessionmaker, create_async_engine,
)
from sqlalchemy.pool import StaticPool

import swap_targeting.infrastructure.database as db_module
from swap_targeting.api.rate_limit import get_rate_limiter
from swap_targeting.db.base import Base
from swap_targeting.infrastructure.database import DatabaseSessionManager, get_db
from swap_targeting.main import app
from swap_targeting.models.booking import Booking
from swap_targeting.models.swap import Swap
from swap_targeting.models.user import User
from swap_targeting.services.proposal_coordinator import ProposalLifecycleCoordinator
from swap_targeting.services.swap_lifecycle import DatabaseSwapLifecycle
from swap_targeting.services.targeting_views import TargetingViews

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


class RecordingNotifier:
    """NotificationHook that remembers every delivered entry."""

    def __init__(self):
        self.entries = []

    async def notify(self, entry) -> None:
        self.entries.append(entry)

    @property
    def actions(self) -> list[str]:
        return [e.action for e in self.entries]


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", echo=False, poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine):
    return async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def coordinator(test_db, notifier):
    return ProposalLifecycleCoordinator(
        test_db,
        lifecycle=DatabaseSwapLifecycle(test_db),
        notifiers=[notifier],
        clock=lambda: NOW,
    )


@pytest.fixture
def views(test_db):
    return TargetingViews(test_db, clock=lambda: NOW)


@pytest.fixture
def make_swap(test_db):
    """Insert a swap (and optionally its owner/booking rows) and commit."""
    async def _make(
        owner_id: str,
        *,
        status: str = "available",
        strategy: str = "first_match",
        auction_end_date: datetime | None = None,
        owner_name: str | None = None,
        booking_title: str | None = None,
    ) -> Swap:
        booking_id = None
        if owner_name is not None and await test_db.get(User, owner_id) is None:
            test_db.add(User(id=owner_id, display_name=owner_name))
        if booking_title is not None:
            booking = Booking(title=booking_title, location="Lisbon")
            test_db.add(booking)
            await test_db.flush()
            booking_id = booking.id
        swap = Swap(
            owner_id=owner_id,
            booking_id=booking_id,
            status=status,
            acceptance_strategy=strategy,
            auction_end_date=auction_end_date,
        )
        test_db.add(swap)
        await test_db.commit()
        return swap
    return _make


@pytest.fixture
async def client(test_engine, test_session_factory):
    """FastAPI test client with DB dependency overridden."""
    async def override_get_db():
        async with test_session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    # Readiness probe uses db_manager directly
    original_manager = db_module.db_manager
    fake_manager = DatabaseSessionManager.__new__(DatabaseSessionManager)
    fake_manager.engine = test_engine
    fake_manager._session_factory = test_session_factory
    db_module.db_manager = fake_manager

    get_rate_limiter().reset()
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    get_rate_limiter().reset()
    app.dependency_overrides.clear()
    db_module.db_manager = original_manager

"""
Shared test fixtures.

Uses a per-test SQLite file (via aiosqlite) for the ping outbox and
in-memory fakes for Redis and the trip service, so tests run without any
server.  Timing settings are shrunk so background loops tick quickly.
"""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from src.config import Settings
from src.domain.enums import BookingStatus, TripStatus
from src.infrastructure.database import init_models
from src.infrastructure.positioning import DevicePositioning, PermissionState
from src.services.trip_machine import TripStateMachine
from src.services.verification import VerificationGate
from src.workers.tracker import LocationTracker
from tests.fakes import (
    VEHICLE,
    FakeMedia,
    FakeRedis,
    FakeTripService,
    make_booking,
)

# ── Fixtures ──────────────────────────────────────────────────────────


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        tracking_interval_seconds=0.01,
        tracking_min_displacement_m=10,
        location_timeout_seconds=0.05,
        outbox_retry_interval_seconds=3600,
        otp_timeout_seconds=1,
        geofence_attempts=3,
    )


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """Fresh file-backed outbox per test, pooled like the production engine."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path}/outbox.db",
        echo=False,
    )
    await init_models(bind=engine)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def trip_service() -> FakeTripService:
    return FakeTripService([make_booking("B1")])


@pytest.fixture
def positioning() -> DevicePositioning:
    return DevicePositioning(
        PermissionState(
            foreground_location=True, background_location=True, camera=True
        )
    )


@pytest_asyncio.fixture
async def tracker(positioning, trip_service, fake_redis, session_factory, test_settings):
    tracker = LocationTracker(
        positioning, trip_service, fake_redis, session_factory, test_settings
    )
    yield tracker
    await tracker.stop()


@pytest.fixture
def gate(trip_service, test_settings) -> VerificationGate:
    return VerificationGate(trip_service, test_settings)


@pytest.fixture
def machine(trip_service, tracker, gate, positioning, test_settings) -> TripStateMachine:
    machine = TripStateMachine(
        trip_service, tracker, gate, positioning, FakeMedia(), test_settings
    )
    machine.bind_vehicle(VEHICLE)
    return machine


@pytest.fixture
def busy_service() -> FakeTripService:
    """B1 already in transit, B2 pending."""
    return FakeTripService(
        [
            make_booking("B1", BookingStatus.ACCEPTED, TripStatus.ONGOING),
            make_booking("B2"),
        ]
    )

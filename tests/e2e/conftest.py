"""
E2E test fixtures for the ridematch API.

Provides:
- A file-backed async SQLite database per test, created from the models
- Seed helpers for drivers, zones, demand snapshots and experiments
- The FastAPI app with the matching and fleet services wired to the SQL
  adapters of the test database
- httpx AsyncClient wired via ASGI transport (no network needed)

Firebase is replaced by a recording notifier so the full
route -> service -> DB flow is exercised without external calls.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, AsyncGenerator, Optional

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from ridematch.adapters.sqlStore import (
    SqlCandidateRepository,
    SqlExperimentSource,
    SqlOutcomeStore,
    SqlRebalancingSink,
    SqlZoneSource,
)
from ridematch.algorithms.entities import Coordinate
from ridematch.api.deps import get_fleet_service, get_matching_service
from ridematch.main import app
from ridematch.models import (
    Base,
    DriverProfileRecord,
    DriverStatus,
    ExperimentVariantRecord,
    ZoneDemandSnapshot,
    ZoneRecord,
)
from ridematch.services.fleetService import FleetService
from ridematch.services.matchingService import MatchingService
from tests.conftest import KM_LAT, PICKUP, RecordingNotifier

# Generous timeouts; SQLite on a CI disk is slower than a warm Postgres pool
E2E_TIMEOUT_SECONDS = 5.0


# ---------------------------------------------------------------------------
# Async engine + session factory (SQLite file per test)
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """A fresh database for every test.

    A file database is used instead of ``:memory:`` because the adapters
    open a new connection per call and every in-memory connection would
    see its own empty database.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ridematch.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


# ---------------------------------------------------------------------------
# Seed helpers
# ---------------------------------------------------------------------------

def driver_row(
    driver_id: str,
    location: Coordinate,
    *,
    status: DriverStatus = DriverStatus.AVAILABLE,
    zone_id: Optional[str] = None,
    rating: float = 4.8,
    completed_rides: int = 500,
    device_token: Optional[str] = None,
    current_load: int = 0,
    wheelchair: bool = False,
) -> DriverProfileRecord:
    return DriverProfileRecord(
        driver_id=driver_id,
        status=status,
        vehicle_type="standard",
        rating=rating,
        completed_rides=completed_rides,
        latitude=location.latitude,
        longitude=location.longitude,
        zone_id=zone_id,
        current_load=current_load,
        max_capacity=3,
        characteristics={
            "gender": "female",
            "experience_years": 3,
            "conversation_style": "quiet",
            "music_preference": "low",
            "languages": ["en"],
        },
        vehicle_features={
            "air_conditioning": True,
            "temperature_control": True,
            "wheelchair_accessible": wheelchair,
        },
        performance={
            "average_response_seconds": 30,
            "cancellation_rate": 0.02,
            "late_arrival_rate": 0.05,
            "satisfaction_score": 4.7,
            "safety_score": 0.95,
            "efficiency_score": 0.9,
        },
        availability={
            "preferred_hours": list(range(24)),
            "max_rides_per_day": 20,
            "current_ride_count": 4,
        },
        device_token=device_token,
    )


def zone_row(zone_id: str, center: Coordinate, **kwargs: Any) -> ZoneRecord:
    return ZoneRecord(
        zone_id=zone_id,
        name=zone_id.title(),
        center_latitude=center.latitude,
        center_longitude=center.longitude,
        **kwargs,
    )


def demand_row(zone_id: str, demand: float, *, minutes_ago: int = 0, **kwargs: Any) -> ZoneDemandSnapshot:
    return ZoneDemandSnapshot(
        zone_id=zone_id,
        demand=demand,
        recorded_at=datetime.now(timezone.utc) - timedelta(minutes=minutes_ago),
        **kwargs,
    )


def experiment_row(variant_id: str, algorithm: str, *, traffic: float = 100.0, active: bool = True):
    return ExperimentVariantRecord(
        variant_id=variant_id,
        name=variant_id.replace("-", " ").title(),
        algorithm=algorithm,
        is_active=active,
        traffic_percentage=traffic,
    )


async def seed(session_factory: async_sessionmaker[AsyncSession], *rows: Any) -> None:
    async with session_factory() as session:
        session.add_all(rows)
        await session.commit()


def north_of_pickup(km: float) -> Coordinate:
    return Coordinate(latitude=PICKUP.latitude + km * KM_LAT, longitude=PICKUP.longitude)


# ---------------------------------------------------------------------------
# Services + HTTP client
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def notifications() -> list:
    return []


@pytest_asyncio.fixture
async def matching_service(session_factory) -> MatchingService:
    return MatchingService(
        SqlCandidateRepository(session_factory),
        SqlOutcomeStore(session_factory),
        SqlExperimentSource(session_factory),
        candidate_timeout_seconds=E2E_TIMEOUT_SECONDS,
        history_timeout_seconds=E2E_TIMEOUT_SECONDS,
        experiment_timeout_seconds=E2E_TIMEOUT_SECONDS,
    )


@pytest_asyncio.fixture
async def fleet_service(session_factory, notifications) -> FleetService:
    return FleetService(
        SqlCandidateRepository(session_factory),
        SqlZoneSource(session_factory),
        RecordingNotifier(notifications),
        SqlRebalancingSink(session_factory),
    )


@pytest_asyncio.fixture
async def client(matching_service, fleet_service) -> AsyncGenerator[AsyncClient, None]:
    app.dependency_overrides[get_matching_service] = lambda: matching_service
    app.dependency_overrides[get_fleet_service] = lambda: fleet_service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()

"""
Shared pytest fixtures for ridematch unit tests.

Provides factories for domain snapshots and in-memory implementations of
the engine ports so services can be exercised without a database, Redis
or Firebase.
"""

import asyncio
from datetime import datetime, timezone
from typing import Optional

import pytest

from ridematch.algorithms.entities import (
    AccessibilityNeeds,
    CompletionStatus,
    Coordinate,
    DriverAvailability,
    DriverCandidate,
    DriverCharacteristics,
    DriverPerformance,
    ExperimentVariant,
    FleetOptimizationResult,
    MatchRequest,
    OutcomeRecord,
    PassengerPreferences,
    RebalancingRecommendation,
    Urgency,
    VehicleFeatures,
    Zone,
    ZoneDemand,
)

# Downtown reference point; ~0.009 degrees of latitude per km
PICKUP = Coordinate(latitude=43.6532, longitude=-79.3832)
DROPOFF = Coordinate(latitude=43.7032, longitude=-79.3832)
KM_LAT = 1 / 111.195

REQUESTED_AT = datetime(2025, 6, 2, 9, 30, tzinfo=timezone.utc)


def point_north(km: float, origin: Coordinate = PICKUP) -> Coordinate:
    """A coordinate ``km`` kilometres due north of ``origin``."""
    return Coordinate(latitude=origin.latitude + km * KM_LAT, longitude=origin.longitude)


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def make_request(
    request_id: str = "req-1",
    passenger_id: str = "passenger-1",
    urgency: Urgency = Urgency.MEDIUM,
    accessibility: Optional[AccessibilityNeeds] = None,
    preferences: Optional[PassengerPreferences] = None,
    vehicle_type: str = "any",
    pickup: Coordinate = PICKUP,
    dropoff: Coordinate = DROPOFF,
) -> MatchRequest:
    return MatchRequest(
        request_id=request_id,
        passenger_id=passenger_id,
        pickup=pickup,
        dropoff=dropoff,
        requested_time=REQUESTED_AT,
        vehicle_type=vehicle_type,
        urgency=urgency,
        accessibility_needs=accessibility,
        preferences=preferences or PassengerPreferences(),
    )


def make_driver(
    driver_id: str = "driver-1",
    km_from_pickup: float = 1.0,
    *,
    location: Optional[Coordinate] = None,
    completed_rides: int = 500,
    rating: float = 4.8,
    wheelchair: bool = False,
    current_load: int = 0,
    max_capacity: int = 3,
    zone_id: Optional[str] = None,
    is_available: bool = True,
) -> DriverCandidate:
    return DriverCandidate(
        driver_id=driver_id,
        location=location or point_north(km_from_pickup),
        is_available=is_available,
        vehicle_type="standard",
        rating=rating,
        completed_rides=completed_rides,
        characteristics=DriverCharacteristics(
            gender="female",
            experience_years=3,
            conversation_style="quiet",
            music_preference="low",
            languages=("en",),
        ),
        vehicle_features=VehicleFeatures(
            air_conditioning=True,
            temperature_control=True,
            wheelchair_accessible=wheelchair,
        ),
        performance=DriverPerformance(
            average_response_seconds=30,
            cancellation_rate=0.02,
            late_arrival_rate=0.05,
            satisfaction_score=4.7,
            safety_score=0.95,
            efficiency_score=0.9,
        ),
        availability=DriverAvailability(
            preferred_hours=frozenset(range(7, 19)),
            max_rides_per_day=20,
            current_ride_count=4,
        ),
        current_load=current_load,
        max_capacity=max_capacity,
        zone_id=zone_id,
    )


def make_outcome(
    driver_id: str = "driver-1",
    match_request_id: str = "match-1",
    success: bool = True,
    urgency: Optional[Urgency] = None,
    vehicle_type: Optional[str] = None,
) -> OutcomeRecord:
    return OutcomeRecord(
        match_request_id=match_request_id,
        selected_driver_id=driver_id,
        passenger_rating=5.0 if success else 2.0,
        driver_rating=5.0 if success else 3.0,
        completion_status=CompletionStatus.COMPLETED if success else CompletionStatus.CANCELLED_BY_DRIVER,
        vehicle_type=vehicle_type,
        urgency=urgency,
    )


def make_zone(zone_id: str, center: Coordinate, **kwargs) -> Zone:
    return Zone(zone_id=zone_id, name=zone_id.title(), center=center, **kwargs)


# ---------------------------------------------------------------------------
# In-memory ports
# ---------------------------------------------------------------------------


class FakeCandidateRepository:
    def __init__(self, drivers=None, *, delay: float = 0.0, error: Optional[Exception] = None):
        self.drivers = list(drivers or [])
        self.delay = delay
        self.error = error
        self.calls: list[tuple[Coordinate, float]] = []

    async def find_available_drivers(self, center, radius_km):
        self.calls.append((center, radius_km))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.drivers)

    async def list_fleet_drivers(self):
        if self.error is not None:
            raise self.error
        return list(self.drivers)


class FakeOutcomeStore:
    def __init__(self, history=None, *, delays=None, errors=None):
        self.history: dict[str, list[OutcomeRecord]] = dict(history or {})
        self.delays: dict[str, float] = dict(delays or {})
        self.errors: dict[str, Exception] = dict(errors or {})
        self.recorded: list[OutcomeRecord] = []

    async def query_outcomes(self, driver_id, limit):
        delay = self.delays.get(driver_id, 0.0)
        if delay:
            await asyncio.sleep(delay)
        if driver_id in self.errors:
            raise self.errors[driver_id]
        return self.history.get(driver_id, [])[:limit]

    async def record_outcome(self, record):
        if any(r.match_request_id == record.match_request_id for r in self.recorded):
            return
        self.recorded.append(record)


class FakeExperimentSource:
    def __init__(self, variant: Optional[ExperimentVariant] = None, *, delay: float = 0.0, error=None):
        self.variant = variant
        self.delay = delay
        self.error = error

    async def get_active_experiment_variant(self):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.variant


class FakeZoneSource:
    def __init__(self, zones=None, demand=None, *, error=None):
        self.zones: list[Zone] = list(zones or [])
        self.demand: list[ZoneDemand] = list(demand or [])
        self.error = error

    async def get_zones(self):
        if self.error is not None:
            raise self.error
        return list(self.zones)

    async def get_zone_demand(self):
        return list(self.demand)


class RecordingNotifier:
    """Notifier that appends to a shared event log."""

    def __init__(self, log: list, *, fail_for: frozenset = frozenset()):
        self.log = log
        self.fail_for = fail_for

    async def notify_driver(self, driver_id: str, recommendation: RebalancingRecommendation):
        if driver_id in self.fail_for:
            raise RuntimeError(f"device unreachable for {driver_id}")
        self.log.append(("notify", driver_id))


class RecordingSink:
    def __init__(self, log: list):
        self.log = log
        self.passes: list[FleetOptimizationResult] = []

    async def record_rebalancing_action(self, recommendation: RebalancingRecommendation):
        self.log.append(("record", recommendation.driver_id))

    async def log_rebalancing_pass(self, result: FleetOptimizationResult):
        self.passes.append(result)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def standard_request() -> MatchRequest:
    return make_request()


@pytest.fixture
def wheelchair_request() -> MatchRequest:
    return make_request(accessibility=AccessibilityNeeds(wheelchair=True))


@pytest.fixture
def event_log() -> list:
    return []

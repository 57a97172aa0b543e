"""
Ports -- interfaces to the collaborators the engine consumes.

The matching and fleet services receive implementations of these
protocols at construction time.  Production adapters live in
``ridematch.adapters`` and ``ridematch.integrations``; tests pass in-memory
fakes.  Every method is async because every real implementation does I/O.
"""

from __future__ import annotations

from typing import Optional, Protocol

from ridematch.algorithms.entities import (
    Coordinate,
    DriverCandidate,
    ExperimentVariant,
    FleetOptimizationResult,
    OutcomeRecord,
    RebalancingRecommendation,
    Zone,
    ZoneDemand,
)


class CandidateRepository(Protocol):
    async def find_available_drivers(
        self, center: Coordinate, radius_km: float
    ) -> list[DriverCandidate]:
        """Available drivers within ``radius_km`` of ``center``."""
        ...

    async def list_fleet_drivers(self) -> list[DriverCandidate]:
        """Snapshot of every on-shift driver (available or busy)."""
        ...


class OutcomeStore(Protocol):
    async def query_outcomes(self, driver_id: str, limit: int) -> list[OutcomeRecord]:
        """Most recent outcomes where ``driver_id`` was selected."""
        ...

    async def record_outcome(self, record: OutcomeRecord) -> None:
        """Append an outcome.  Repeated writes for one match id are no-ops."""
        ...


class ExperimentSource(Protocol):
    async def get_active_experiment_variant(self) -> Optional[ExperimentVariant]:
        ...


class ZoneSource(Protocol):
    async def get_zones(self) -> list[Zone]:
        ...

    async def get_zone_demand(self) -> list[ZoneDemand]:
        ...


class DriverNotifier(Protocol):
    async def notify_driver(
        self, driver_id: str, recommendation: RebalancingRecommendation
    ) -> None:
        ...


class RebalancingSink(Protocol):
    async def record_rebalancing_action(self, recommendation: RebalancingRecommendation) -> None:
        ...

    async def log_rebalancing_pass(self, result: FleetOptimizationResult) -> None:
        ...


class DistanceOracle(Protocol):
    async def distance_km(self, origin: Coordinate, destination: Coordinate) -> float:
        ...

    async def travel_minutes(self, origin: Coordinate, destination: Coordinate) -> float:
        ...

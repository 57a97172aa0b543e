"""
Fleet Distribution Optimizer
============================

Compares where drivers are against where demand is and recommends moving
idle drivers from over-served zones to under-served ones.

Algorithm:
  1. Count drivers per zone (polygon containment, or zone tag when the
     zone has no polygon).  A driver is counted in the first zone that
     contains it.
  2. Allocate the fleet to zones in proportion to demand:
     ``target[z] = round(total_drivers * demand[z] / total_demand)``,
     clamped to the zone's min/max driver bounds.
  3. Zones with ``current - target > 1`` are surplus, ``< -1`` deficit.
     For every (surplus, deficit) pair one low-utilisation driver
     (utilisation < 0.5) is recommended to move to the deficit centroid.
  4. Priority grows with the deficit being addressed.
  5. Recommendations are sorted priority-descending.

The optimization score is ``(1 - total_deviation / max_deviation) * 100``:
100 is perfect alignment, 0 maximal misallocation.

Everything here is pure; notification and persistence side effects live
in ``ridematch.services.fleetService``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence

from ridematch.algorithms.entities import (
    DriverCandidate,
    EstimatedImpact,
    FleetOptimizationResult,
    RebalancingRecommendation,
    RecommendationPriority,
    Zone,
    ZoneDemand,
    ZoneStatus,
)
from ridematch.algorithms.geo import AVERAGE_CITY_SPEED_KMH, distance_between, driver_in_zone, travel_minutes

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FleetConfig:
    """Tunable thresholds for a single optimization pass."""

    imbalance_threshold: int = 1
    idle_utilization_threshold: float = 0.5
    high_priority_deficit: int = 5
    medium_priority_deficit: int = 3
    # Set to force every recommendation to one priority level.
    fixed_priority: Optional[RecommendationPriority] = None
    rebalancing_score_threshold: float = 70.0
    unmet_demand_ratio_threshold: float = 0.1
    # Baseline impact estimates per moved driver
    base_wait_time_reduction_minutes: float = 2.5
    base_utilization_gain: float = 0.15
    base_revenue_gain: float = 50.0
    base_confidence: float = 0.8
    long_trip_minutes: float = 15.0
    long_trip_confidence: float = 0.6
    speed_kmh: float = AVERAGE_CITY_SPEED_KMH


DEFAULT_FLEET_CONFIG = FleetConfig()


# ---------------------------------------------------------------------------
# Distribution
# ---------------------------------------------------------------------------

def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def assign_drivers_to_zones(
    candidates: Sequence[DriverCandidate],
    zones: Sequence[Zone],
) -> dict[str, list[DriverCandidate]]:
    """Map each zone id to the drivers currently inside it."""
    assignment: dict[str, list[DriverCandidate]] = {zone.zone_id: [] for zone in zones}
    for driver in candidates:
        for zone in zones:
            if driver_in_zone(driver, zone):
                assignment[zone.zone_id].append(driver)
                break
    return assignment


def compute_target_distribution(
    zones: Sequence[Zone],
    demand: Sequence[ZoneDemand],
    total_drivers: int,
    current: dict[str, int],
) -> dict[str, int]:
    """Demand-proportional target driver count per zone."""
    demand_by_zone = {d.zone_id: max(d.demand, 0.0) for d in demand}
    total_demand = sum(demand_by_zone.get(zone.zone_id, 0.0) for zone in zones)

    if total_demand <= 0:
        return dict(current)

    targets: dict[str, int] = {}
    for zone in zones:
        share = demand_by_zone.get(zone.zone_id, 0.0) / total_demand
        target = max(_round_half_up(total_drivers * share), zone.min_drivers)
        if zone.max_drivers is not None:
            target = min(target, zone.max_drivers)
        targets[zone.zone_id] = target
    return targets


def compute_optimization_score(current: dict[str, int], target: dict[str, int]) -> float:
    total_deviation = 0
    max_deviation = 0
    for zone_id, count in current.items():
        goal = target.get(zone_id, 0)
        total_deviation += abs(count - goal)
        max_deviation += max(count, goal)
    if max_deviation == 0:
        return 100.0
    return (1 - total_deviation / max_deviation) * 100


# ---------------------------------------------------------------------------
# Recommendations
# ---------------------------------------------------------------------------

def priority_for_deficit(deficit: int, config: FleetConfig = DEFAULT_FLEET_CONFIG) -> RecommendationPriority:
    if config.fixed_priority is not None:
        return config.fixed_priority
    if deficit >= config.high_priority_deficit:
        return RecommendationPriority.HIGH
    if deficit >= config.medium_priority_deficit:
        return RecommendationPriority.MEDIUM
    return RecommendationPriority.LOW


def _build_recommendation(
    driver: DriverCandidate,
    source: Zone,
    target: Zone,
    deficit: int,
    wait_minutes: float,
    config: FleetConfig,
) -> RebalancingRecommendation:
    destination = target.centroid
    travel = travel_minutes(distance_between(driver.location, destination), config.speed_kmh)
    wait_reduction = wait_minutes / deficit if wait_minutes > 0 else config.base_wait_time_reduction_minutes
    confidence = config.base_confidence if travel <= config.long_trip_minutes else config.long_trip_confidence

    return RebalancingRecommendation(
        driver_id=driver.driver_id,
        current_location=driver.location,
        target_location=destination,
        source_zone_id=source.zone_id,
        target_zone_id=target.zone_id,
        reason=f"Move from surplus area {source.zone_id} to high-demand area {target.zone_id}",
        priority=priority_for_deficit(deficit, config),
        estimated_impact=EstimatedImpact(
            wait_time_reduction_minutes=round(wait_reduction * target.demand_multiplier, 2),
            utilization_gain=round(config.base_utilization_gain * (1 - driver.utilization_rate), 3),
            revenue_gain=round(config.base_revenue_gain * target.demand_multiplier, 2),
        ),
        estimated_travel_minutes=round(travel, 1),
        confidence=confidence,
    )


def generate_recommendations(
    zones: Sequence[Zone],
    drivers_by_zone: dict[str, list[DriverCandidate]],
    current: dict[str, int],
    target: dict[str, int],
    wait_by_zone: dict[str, float],
    config: FleetConfig = DEFAULT_FLEET_CONFIG,
) -> list[RebalancingRecommendation]:
    surplus = [z for z in zones if current[z.zone_id] - target[z.zone_id] > config.imbalance_threshold]
    deficit = [z for z in zones if current[z.zone_id] - target[z.zone_id] < -config.imbalance_threshold]
    for zone in [z for z in deficit if not z.has_location]:
        logger.warning(
            "Zone %s is short of drivers but has no center or polygon; no move suggested",
            zone.zone_id,
        )
    deficit = [z for z in deficit if z.has_location]

    used: set[str] = set()
    recommendations: list[RebalancingRecommendation] = []

    for source in surplus:
        idle = sorted(
            (
                d for d in drivers_by_zone[source.zone_id]
                if d.utilization_rate < config.idle_utilization_threshold
            ),
            key=lambda d: (d.utilization_rate, d.driver_id),
        )
        for destination in deficit:
            driver = next((d for d in idle if d.driver_id not in used), None)
            if driver is None:
                break
            used.add(driver.driver_id)
            shortfall = target[destination.zone_id] - current[destination.zone_id]
            recommendations.append(
                _build_recommendation(
                    driver,
                    source,
                    destination,
                    shortfall,
                    wait_by_zone.get(destination.zone_id, 0.0),
                    config,
                )
            )

    recommendations.sort(key=lambda r: r.priority.rank, reverse=True)
    return recommendations


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def optimize_fleet_distribution(
    candidates: Sequence[DriverCandidate],
    zones: Sequence[Zone],
    demand: Sequence[ZoneDemand],
    config: FleetConfig = DEFAULT_FLEET_CONFIG,
) -> FleetOptimizationResult:
    """Run one optimization pass over a fleet snapshot.

    Args:
        candidates: Fleet snapshot (available and busy drivers).
        zones: Zone configuration.
        demand: Latest demand per zone.
        config: Thresholds and impact baselines.

    Returns:
        FleetOptimizationResult with zone status, recommendations and the
        0-100 optimization score.
    """
    drivers_by_zone = assign_drivers_to_zones(candidates, zones)
    current = {zone_id: len(drivers) for zone_id, drivers in drivers_by_zone.items()}
    target = compute_target_distribution(zones, demand, len(candidates), current)

    demand_by_zone = {d.zone_id: d for d in demand}
    wait_by_zone = {d.zone_id: d.average_wait_minutes for d in demand}

    recommendations = generate_recommendations(
        zones, drivers_by_zone, current, target, wait_by_zone, config
    )

    total_demand = sum(d.demand for d in demand)
    unmet_demand = 0.0
    for d in demand:
        supply = d.supply if d.supply is not None else current.get(d.zone_id, 0)
        unmet_demand += max(0.0, d.demand - supply)

    utilizations = [c.utilization_rate for c in candidates]
    zone_status = tuple(
        ZoneStatus(
            zone=zone,
            current_drivers=current[zone.zone_id],
            target_drivers=target[zone.zone_id],
            average_wait_minutes=(
                demand_by_zone[zone.zone_id].average_wait_minutes
                if zone.zone_id in demand_by_zone
                else 0.0
            ),
        )
        for zone in zones
    )

    return FleetOptimizationResult(
        total_drivers=len(candidates),
        active_drivers=sum(1 for u in utilizations if u > 0),
        average_utilization=sum(utilizations) / len(utilizations) if utilizations else 0.0,
        total_demand=total_demand,
        unmet_demand=unmet_demand,
        recommendations=tuple(recommendations),
        zone_status=zone_status,
        optimization_score=compute_optimization_score(current, target),
    )


def should_trigger_rebalancing(
    result: FleetOptimizationResult,
    config: FleetConfig = DEFAULT_FLEET_CONFIG,
) -> bool:
    return (
        result.optimization_score < config.rebalancing_score_threshold
        or result.unmet_demand > result.total_demand * config.unmet_demand_ratio_threshold
        or any(r.priority == RecommendationPriority.HIGH for r in result.recommendations)
    )


def select_for_execution(
    result: FleetOptimizationResult,
    limit: int = 5,
) -> list[RebalancingRecommendation]:
    """High-priority recommendations to act on this pass, best first."""
    return [r for r in result.recommendations if r.priority == RecommendationPriority.HIGH][:limit]

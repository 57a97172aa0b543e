"""
Load Balancing
==============

Reorders an already-filtered driver list so work spreads across the fleet,
and summarises how loaded the fleet currently is.

Strategies (all sorts are stable, so ties keep their input order):

  round_robin           -- fewest active rides first
  least_connections     -- lowest utilization rate first
  weighted_round_robin  -- lowest weighted blend of utilization, efficiency
                           and rating first (weights from the strategy)
  geographic            -- pickup distance inflated by utilization, ascending
  ai_optimized          -- highest ``ai_load_score`` first

An inactive strategy or an unknown algorithm leaves the order untouched.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

from ridematch.algorithms.entities import Coordinate, DriverCandidate, Zone
from ridematch.algorithms.geo import distance_between, driver_in_zone


class LoadBalancingAlgorithm(str, enum.Enum):
    ROUND_ROBIN = "round_robin"
    LEAST_CONNECTIONS = "least_connections"
    WEIGHTED_ROUND_ROBIN = "weighted_round_robin"
    GEOGRAPHIC = "geographic"
    AI_OPTIMIZED = "ai_optimized"


@dataclass(frozen=True)
class LoadBalancingStrategy:
    strategy_id: str
    algorithm: str
    name: str = ""
    description: str = ""
    parameters: dict[str, Any] = field(default_factory=dict)
    is_active: bool = True


@dataclass(frozen=True)
class FleetUtilization:
    overall: float
    by_zone: dict[str, float]


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_BALANCING_WEIGHTS: dict[str, float] = {
    "utilization": 0.4,
    "efficiency": 0.3,
    "rating": 0.3,
}

AI_SCORE_WEIGHTS: dict[str, float] = {
    "utilization": 0.3,
    "distance": 0.25,
    "efficiency": 0.2,
    "satisfaction": 0.15,
    "response": 0.1,
}

AI_MAX_DISTANCE_KM: float = 10.0
AI_MAX_RESPONSE_SECONDS: float = 300.0


# ---------------------------------------------------------------------------
# Orderings
# ---------------------------------------------------------------------------

def order_round_robin(drivers: Sequence[DriverCandidate]) -> list[DriverCandidate]:
    return sorted(drivers, key=lambda d: d.current_load)


def order_least_connections(drivers: Sequence[DriverCandidate]) -> list[DriverCandidate]:
    return sorted(drivers, key=lambda d: d.utilization_rate)


def weighted_load_score(driver: DriverCandidate, weights: dict[str, float]) -> float:
    """Lower scores are dispatched first."""
    merged = {**DEFAULT_BALANCING_WEIGHTS, **weights}
    return (
        driver.utilization_rate * merged["utilization"]
        + driver.performance.efficiency_score * merged["efficiency"]
        + driver.rating / 5.0 * merged["rating"]
    )


def order_weighted_round_robin(
    drivers: Sequence[DriverCandidate],
    weights: Optional[dict[str, float]] = None,
) -> list[DriverCandidate]:
    weights = weights or {}
    return sorted(drivers, key=lambda d: weighted_load_score(d, weights))


def order_geographic(
    drivers: Sequence[DriverCandidate], pickup: Coordinate
) -> list[DriverCandidate]:
    return sorted(
        drivers,
        key=lambda d: distance_between(d.location, pickup) * (1.0 + d.utilization_rate),
    )


def ai_load_score(driver: DriverCandidate, pickup: Coordinate) -> float:
    """Blend of spare capacity, proximity, efficiency, rating and response
    time; each part lies in [0, 1] and higher is better."""
    perf = driver.performance
    parts = {
        "utilization": 1.0 - driver.utilization_rate,
        "distance": max(0.0, 1.0 - distance_between(driver.location, pickup) / AI_MAX_DISTANCE_KM),
        "efficiency": perf.efficiency_score,
        "satisfaction": driver.rating / 5.0,
        "response": max(0.0, 1.0 - perf.average_response_seconds / AI_MAX_RESPONSE_SECONDS),
    }
    return sum(parts[name] * weight for name, weight in AI_SCORE_WEIGHTS.items())


def order_ai_optimized(
    drivers: Sequence[DriverCandidate], pickup: Coordinate
) -> list[DriverCandidate]:
    return sorted(drivers, key=lambda d: ai_load_score(d, pickup), reverse=True)


Ordering = Callable[[Sequence[DriverCandidate], LoadBalancingStrategy, Coordinate], list[DriverCandidate]]

_ORDERINGS: dict[str, Ordering] = {
    LoadBalancingAlgorithm.ROUND_ROBIN.value: lambda d, s, p: order_round_robin(d),
    LoadBalancingAlgorithm.LEAST_CONNECTIONS.value: lambda d, s, p: order_least_connections(d),
    LoadBalancingAlgorithm.WEIGHTED_ROUND_ROBIN.value: lambda d, s, p: order_weighted_round_robin(
        d, s.parameters.get("weights")
    ),
    LoadBalancingAlgorithm.GEOGRAPHIC.value: lambda d, s, p: order_geographic(d, p),
    LoadBalancingAlgorithm.AI_OPTIMIZED.value: lambda d, s, p: order_ai_optimized(d, p),
}


def apply_load_balancing(
    drivers: Sequence[DriverCandidate],
    strategy: Optional[LoadBalancingStrategy],
    pickup: Coordinate,
) -> list[DriverCandidate]:
    """Return ``drivers`` reordered by ``strategy``.

    Args:
        drivers: Candidates already filtered for the request.
        strategy: Strategy to apply; ``None`` or inactive keeps the order.
        pickup: Pickup point, used by the distance-aware strategies.

    Returns:
        A new list holding the same drivers.
    """
    if strategy is None or not strategy.is_active:
        return list(drivers)
    algorithm = strategy.algorithm
    if isinstance(algorithm, LoadBalancingAlgorithm):
        algorithm = algorithm.value
    ordering = _ORDERINGS.get(algorithm)
    if ordering is None:
        return list(drivers)
    return ordering(drivers, strategy, pickup)


# ---------------------------------------------------------------------------
# Utilization
# ---------------------------------------------------------------------------

def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def fleet_utilization_metrics(
    drivers: Sequence[DriverCandidate], zones: Sequence[Zone]
) -> FleetUtilization:
    """Mean utilization over the whole fleet and per zone (0.0 when empty)."""
    by_zone = {
        zone.zone_id: _mean([d.utilization_rate for d in drivers if driver_in_zone(d, zone)])
        for zone in zones
    }
    return FleetUtilization(
        overall=_mean([d.utilization_rate for d in drivers]),
        by_zone=by_zone,
    )

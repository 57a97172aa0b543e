"""
Default distance oracle.

Great-circle distance with a constant average city speed.  Deployments
with a routing service plug in their own ``DistanceOracle`` instead.
"""

from __future__ import annotations

from ridematch.algorithms.entities import Coordinate
from ridematch.algorithms.geo import AVERAGE_CITY_SPEED_KMH, distance_between, travel_minutes


class HaversineDistanceOracle:
    def __init__(self, speed_kmh: float = AVERAGE_CITY_SPEED_KMH) -> None:
        self.speed_kmh = speed_kmh

    async def distance_km(self, origin: Coordinate, destination: Coordinate) -> float:
        return distance_between(origin, destination)

    async def travel_minutes(self, origin: Coordinate, destination: Coordinate) -> float:
        return travel_minutes(distance_between(origin, destination), self.speed_kmh)

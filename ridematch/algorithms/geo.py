"""
Geo helpers -- distance, radius filtering, and zone containment.

Uses the haversine formula for great-circle distance between two points
on Earth's surface. Accurate enough for pickup radius calculations
(error < 0.5% for distances under 100 km).

Zone containment uses a ray-casting point-in-polygon test on raw
latitude/longitude pairs, which is adequate for city-scale zones that do
not straddle the antimeridian.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

from ridematch.algorithms.entities import Coordinate, DriverCandidate, Zone

# Earth's mean radius in kilometres
EARTH_RADIUS_KM: float = 6371.0

# Average city driving speed used when no routing oracle is wired in
AVERAGE_CITY_SPEED_KMH: float = 30.0


def haversine_distance(
    lat1: float,
    lon1: float,
    lat2: float,
    lon2: float,
) -> float:
    """Calculate the great-circle distance between two points using the
    haversine formula.

    Returns:
        Distance in kilometres.
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_lat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def distance_between(a: Coordinate, b: Coordinate) -> float:
    """Haversine distance in km between two coordinates."""
    return haversine_distance(a.latitude, a.longitude, b.latitude, b.longitude)


def travel_minutes(distance_km: float, speed_kmh: float = AVERAGE_CITY_SPEED_KMH) -> float:
    """Convert a distance into driving minutes at a constant speed."""
    if speed_kmh <= 0:
        raise ValueError("speed_kmh must be positive")
    return distance_km / speed_kmh * 60.0


@dataclass
class DriverDistance:
    """A driver paired with their calculated distance from a reference point."""

    driver: DriverCandidate
    distance_km: float


def filter_by_radius(
    drivers: Sequence[DriverCandidate],
    center: Coordinate,
    radius_km: float,
) -> list[DriverDistance]:
    """Filter drivers to those within ``radius_km`` of ``center``.

    Returns:
        List of DriverDistance objects sorted by distance (closest first).
    """
    results: list[DriverDistance] = []

    for driver in drivers:
        distance = distance_between(center, driver.location)
        if distance <= radius_km:
            results.append(DriverDistance(driver=driver, distance_km=distance))

    results.sort(key=lambda dd: dd.distance_km)

    return results


def point_in_polygon(point: Coordinate, polygon: Sequence[Coordinate]) -> bool:
    """Ray-casting containment test.

    Points exactly on an edge may fall either side; zones are expected to
    tile without relying on boundary behaviour.
    """
    if len(polygon) < 3:
        return False

    x, y = point.longitude, point.latitude
    inside = False
    j = len(polygon) - 1
    for i in range(len(polygon)):
        xi, yi = polygon[i].longitude, polygon[i].latitude
        xj, yj = polygon[j].longitude, polygon[j].latitude
        if (yi > y) != (yj > y):
            x_cross = (xj - xi) * (y - yi) / (yj - yi) + xi
            if x < x_cross:
                inside = not inside
        j = i
    return inside


def driver_in_zone(driver: DriverCandidate, zone: Zone) -> bool:
    """True polygon containment when the zone has a polygon, otherwise the
    driver's zone tag decides."""
    if len(zone.polygon) >= 3:
        return point_in_polygon(driver.location, zone.polygon)
    return driver.zone_id is not None and driver.zone_id == zone.zone_id

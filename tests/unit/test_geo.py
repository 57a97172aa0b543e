"""
Unit tests for the geo helpers: haversine distance, radius filtering, and
zone containment.
"""

import pytest

from ridematch.algorithms.entities import Coordinate, Zone
from ridematch.algorithms.geo import (
    distance_between,
    driver_in_zone,
    filter_by_radius,
    haversine_distance,
    point_in_polygon,
    travel_minutes,
)
from tests.conftest import PICKUP, make_driver

SQUARE = (
    Coordinate(43.60, -79.45),
    Coordinate(43.60, -79.35),
    Coordinate(43.70, -79.35),
    Coordinate(43.70, -79.45),
)


class TestHaversine:
    def test_zero_distance(self):
        assert haversine_distance(43.65, -79.38, 43.65, -79.38) == pytest.approx(0.0)

    def test_one_degree_latitude(self):
        assert haversine_distance(0.0, 0.0, 1.0, 0.0) == pytest.approx(111.195, rel=1e-3)

    def test_symmetric(self):
        a = Coordinate(43.65, -79.38)
        b = Coordinate(45.50, -73.57)
        assert distance_between(a, b) == pytest.approx(distance_between(b, a))


class TestTravelMinutes:
    def test_thirty_kmh(self):
        assert travel_minutes(15.0) == pytest.approx(30.0)

    def test_rejects_non_positive_speed(self):
        with pytest.raises(ValueError):
            travel_minutes(1.0, 0)


class TestFilterByRadius:
    def test_filters_and_sorts_closest_first(self):
        drivers = [
            make_driver("far", 12.0),
            make_driver("mid", 4.0),
            make_driver("near", 0.5),
        ]
        result = filter_by_radius(drivers, PICKUP, 10.0)
        assert [d.driver.driver_id for d in result] == ["near", "mid"]
        assert result[0].distance_km == pytest.approx(0.5, rel=1e-3)


class TestZoneContainment:
    def test_point_inside_polygon(self):
        assert point_in_polygon(Coordinate(43.65, -79.40), SQUARE)

    def test_point_outside_polygon(self):
        assert not point_in_polygon(Coordinate(43.75, -79.40), SQUARE)

    def test_degenerate_polygon_contains_nothing(self):
        assert not point_in_polygon(Coordinate(43.65, -79.40), SQUARE[:2])

    def test_polygon_zone_uses_geometry(self):
        zone = Zone(zone_id="downtown", polygon=SQUARE)
        inside = make_driver("a", location=Coordinate(43.65, -79.40), zone_id="elsewhere")
        outside = make_driver("b", location=Coordinate(43.80, -79.40), zone_id="downtown")
        assert driver_in_zone(inside, zone)
        assert not driver_in_zone(outside, zone)

    def test_zone_without_polygon_uses_tag(self):
        zone = Zone(zone_id="airport", center=Coordinate(43.68, -79.63))
        assert driver_in_zone(make_driver("a", zone_id="airport"), zone)
        assert not driver_in_zone(make_driver("b", zone_id=None), zone)

    def test_centroid_falls_back_to_polygon_mean(self):
        zone = Zone(zone_id="downtown", polygon=SQUARE)
        assert zone.centroid.latitude == pytest.approx(43.65)
        assert zone.centroid.longitude == pytest.approx(-79.40)

    def test_centroid_requires_geometry(self):
        with pytest.raises(ValueError):
            Zone(zone_id="nowhere").centroid

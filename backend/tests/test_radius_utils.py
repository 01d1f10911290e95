"""
test_radius_utils.py — Distance, bounding box and formatting helpers.

Run with:
    pytest backend/tests/test_radius_utils.py -v
"""

from __future__ import annotations

import math

import pytest

from backend.app.alerts.models import GeoPoint
from backend.app.spatial.radius_utils import (
    EARTH_RADIUS_M,
    degree_box,
    format_coordinates,
    format_distance,
    haversine_m,
    radius_bounding_box,
)


class TestHaversine:
    """Great-circle distance in meters."""

    def test_zero_distance(self):
        p = GeoPoint(13.0827, 80.2707)
        assert haversine_m(p, p) == 0.0

    def test_one_degree_longitude_at_equator(self):
        d = haversine_m(GeoPoint(0.0, 0.0), GeoPoint(0.0, 1.0))
        assert d == pytest.approx(EARTH_RADIUS_M * math.pi / 180, rel=1e-9)
        assert round(d) == 111195

    def test_symmetric(self):
        a, b = GeoPoint(10.0, 20.0), GeoPoint(10.05, 20.07)
        assert haversine_m(a, b) == pytest.approx(haversine_m(b, a))

    def test_small_offset_is_tens_of_meters(self):
        d = haversine_m(GeoPoint(10.0, 20.0), GeoPoint(10.0005, 20.0005))
        assert 70 < d < 80

    def test_antipodal_points(self):
        d = haversine_m(GeoPoint(0.0, 0.0), GeoPoint(0.0, 180.0))
        assert d == pytest.approx(math.pi * EARTH_RADIUS_M, rel=1e-9)


class TestRadiusBoundingBox:
    """Box must contain every point of the circle."""

    def test_contains_circle_edge_points(self):
        center = GeoPoint(10.0, 20.0)
        box = radius_bounding_box(center, 10_000)
        assert box.bounds_longitude
        delta = math.degrees(10_000 / EARTH_RADIUS_M)
        assert box.contains(GeoPoint(10.0 + delta * 0.999, 20.0))
        assert box.contains(GeoPoint(10.0, 20.0 + delta))
        assert not box.contains(GeoPoint(10.2, 20.0))

    def test_longitude_span_widens_with_latitude(self):
        low = radius_bounding_box(GeoPoint(0.0, 0.0), 10_000)
        high = radius_bounding_box(GeoPoint(60.0, 0.0), 10_000)
        assert (high.max_lng - high.min_lng) > (low.max_lng - low.min_lng) * 1.9

    def test_antimeridian_drops_longitude_bounds(self):
        box = radius_bounding_box(GeoPoint(0.0, 179.99), 10_000)
        assert not box.bounds_longitude
        assert box.contains(GeoPoint(0.0, -179.99))

    def test_pole_drops_longitude_bounds(self):
        box = radius_bounding_box(GeoPoint(89.95, 0.0), 10_000)
        assert not box.bounds_longitude
        assert box.max_lat == 90.0


class TestDegreeBox:

    def test_inclusive_edges(self):
        box = degree_box(GeoPoint(10.0, 20.0), 0.5)
        assert box.contains(GeoPoint(10.5, 20.5))
        assert box.contains(GeoPoint(9.5, 19.5))
        assert not box.contains(GeoPoint(10.5, 20.75))


class TestFormatting:

    def test_coordinates_four_decimals(self):
        assert format_coordinates(GeoPoint(10.0, 20.0)) == "10.0000°, 20.0000°"
        assert format_coordinates(GeoPoint(-8.123456, 115.5)) == "-8.1235°, 115.5000°"

    def test_distance_meters_and_km(self):
        assert format_distance(850.4) == "850 m"
        assert format_distance(2345.0) == "2.3 km"
        assert format_distance(10_000) == "10.0 km"

"""
radius_utils.py — Great-circle distance and bounding boxes for proximity alerts.

Provides:
    - Haversine distance between two (lat, lng) points, in meters
    - Radius bounding box for cheap SQL pre-filtering
    - Degree box used by the duplicate-suppression ledger
    - Coordinate formatting helpers shared by the alert templates

Coordinates are in **decimal degrees**.

Mathematical Foundation — Haversine Formula
============================================
Given two points P₁(φ₁, λ₁) and P₂(φ₂, λ₂):

    a = sin²(Δφ / 2) + cos(φ₁) · cos(φ₂) · sin²(Δλ / 2)
    c = 2 · atan2(√a, √(1 − a))
    d = R · c

Where φ is latitude and λ longitude (radians) and R is Earth's mean radius.
Accuracy is ~0.5 %, which is far below the 10 km alert radius granularity.

Two kinds of "nearby"
=====================
    Proximity fan-out   →  true circle:  haversine(event, user) ≤ radius_m
    Authority dedup     →  rectangle:    |Δlat| ≤ 0.1° AND |Δlng| ≤ 0.1°

The rectangle is deliberately coarse ("same ongoing incident"); it is not
converted into a distance.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

from backend.app.alerts.models import GeoPoint


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EARTH_RADIUS_M: float = 6_371_008.8  # IAU mean radius


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned lat/lng rectangle; longitude bounds are None when unbounded."""
    min_lat: float
    max_lat: float
    min_lng: Optional[float]
    max_lng: Optional[float]

    @property
    def bounds_longitude(self) -> bool:
        return self.min_lng is not None and self.max_lng is not None

    def contains(self, point: GeoPoint) -> bool:
        if not (self.min_lat <= point.lat <= self.max_lat):
            return False
        if not self.bounds_longitude:
            return True
        return self.min_lng <= point.lng <= self.max_lng


# ---------------------------------------------------------------------------
# Distance
# ---------------------------------------------------------------------------

def haversine_m(point1: GeoPoint, point2: GeoPoint) -> float:
    """
    Great-circle distance in meters.

    >>> round(haversine_m(GeoPoint(0.0, 0.0), GeoPoint(0.0, 1.0)))
    111195
    """
    phi1 = math.radians(point1.lat)
    phi2 = math.radians(point2.lat)
    d_phi = phi2 - phi1
    d_lambda = math.radians(point2.lng - point1.lng)

    a = (
        math.sin(d_phi / 2.0) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    )
    # Clamp against floating-point drift just above 1.0
    a = min(1.0, max(0.0, a))
    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))
    return EARTH_RADIUS_M * c


# ---------------------------------------------------------------------------
# Bounding boxes
# ---------------------------------------------------------------------------

def radius_bounding_box(center: GeoPoint, radius_m: float) -> BoundingBox:
    """
    Smallest lat/lng rectangle guaranteed to contain the radius circle.

    The longitude bounds are dropped (None) when the box would reach a pole
    or wrap across the antimeridian; the precise Haversine check decides.
    """
    angular = radius_m / EARTH_RADIUS_M
    delta_lat = math.degrees(angular)

    min_lat = center.lat - delta_lat
    max_lat = center.lat + delta_lat
    if min_lat <= -90.0 or max_lat >= 90.0:
        return BoundingBox(max(min_lat, -90.0), min(max_lat, 90.0), None, None)

    cos_lat = math.cos(math.radians(center.lat))
    delta_lng = math.degrees(angular / cos_lat)
    min_lng = center.lng - delta_lng
    max_lng = center.lng + delta_lng
    if min_lng < -180.0 or max_lng > 180.0:
        return BoundingBox(min_lat, max_lat, None, None)

    return BoundingBox(min_lat, max_lat, min_lng, max_lng)


def degree_box(center: GeoPoint, half_width_deg: float) -> BoundingBox:
    """±half_width_deg rectangle around a point (no wrap handling, as stored)."""
    return BoundingBox(
        min_lat=center.lat - half_width_deg,
        max_lat=center.lat + half_width_deg,
        min_lng=center.lng - half_width_deg,
        max_lng=center.lng + half_width_deg,
    )


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

def format_coordinates(point: GeoPoint) -> str:
    """Fallback human-readable location: '10.0000°, 20.0000°'."""
    return f"{point.lat:.4f}°, {point.lng:.4f}°"


def format_distance(distance_m: float) -> str:
    """
    >>> format_distance(850.4)
    '850 m'
    >>> format_distance(2345.0)
    '2.3 km'
    """
    if distance_m < 1000.0:
        return f"{distance_m:.0f} m"
    return f"{distance_m / 1000.0:.1f} km"

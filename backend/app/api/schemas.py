"""
Pydantic schemas for the hazard reporting API.

Separated from the route handler so they are reusable across
the codebase (ingestion service, background workers, tests).

HazardReportIn is the single place where the many shapes a client may
send for a location are reduced to one:

    {"location": {"lat": 10.0, "lng": 20.0}}            JSON object
    {"location": "{\"lat\": 10.0, \"lng\": 20.0}"}      JSON-encoded string
    {"lat": "10.0", "lng": "20.0"}                      flat fields
    {"location[lat]": "10.0", "location[lng]": "20.0"}  form-style keys
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

from backend.app.alerts.models import GeoPoint, HazardKind


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class LocationIn(BaseModel):
    lat: float = Field(..., ge=-90.0, le=90.0, allow_inf_nan=False, examples=[12.9716])
    lng: float = Field(..., ge=-180.0, le=180.0, allow_inf_nan=False, examples=[80.2707])

    def to_point(self) -> GeoPoint:
        return GeoPoint(self.lat, self.lng)


def _flat_location(data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    for lat_key, lng_key in (
        ("location[lat]", "location[lng]"),
        ("lat", "lng"),
        ("latitude", "longitude"),
    ):
        if lat_key in data or lng_key in data:
            return {"lat": data.get(lat_key), "lng": data.get(lng_key)}
    return None


class HazardReportIn(BaseModel):
    """A citizen-submitted ocean hazard report."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    kind: HazardKind = Field(
        ...,
        validation_alias=AliasChoices("kind", "type", "hazardType"),
        examples=["Oil Spill"],
    )
    severity: int = Field(..., ge=1, le=10, examples=[7])
    location: LocationIn
    description: Optional[str] = Field(None, max_length=5000)
    image_url: Optional[str] = Field(
        None, validation_alias=AliasChoices("image_url", "imageUrl"),
    )
    reporter_id: str = Field(
        ..., min_length=1,
        validation_alias=AliasChoices("reporter_id", "reporterId", "reportedBy"),
    )
    reporter_name: str = Field(
        "Anonymous",
        validation_alias=AliasChoices("reporter_name", "reporterName"),
    )

    @model_validator(mode="before")
    @classmethod
    def _normalise_location(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        location = data.get("location")

        if isinstance(location, str):
            try:
                location = json.loads(location)
            except json.JSONDecodeError:
                location = _flat_location(data)
                if location is None:
                    raise ValueError("location must be an object or a JSON-encoded object")
        if location is None:
            location = _flat_location(data)
        if location is None:
            raise ValueError("location is required")

        data["location"] = location
        return data


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class LocationOut(BaseModel):
    lat: float
    lng: float


class HazardReportOut(BaseModel):
    id: str
    type: str
    severity: int
    location: LocationOut
    description: Optional[str] = None
    imageUrl: Optional[str] = None
    reportedBy: str
    reporterName: str
    verificationStatus: str
    reportedAt: datetime

    @classmethod
    def from_row(cls, row: Any) -> "HazardReportOut":
        return cls(
            id=row.id,
            type=row.hazard_kind,
            severity=row.severity,
            location=LocationOut(lat=row.latitude, lng=row.longitude),
            description=row.description,
            imageUrl=row.image_url,
            reportedBy=row.reporter_id,
            reporterName=row.reporter_name,
            verificationStatus=row.verification_status,
            reportedAt=row.created_at,
        )


class ChannelStatusOut(BaseModel):
    channel: str
    configured: bool
    remediation: Optional[str] = None


class ChannelStatusResponse(BaseModel):
    channels: List[ChannelStatusOut]
    realtime_listeners: int
    notifications_in_flight: int


class LedgerEntryOut(BaseModel):
    hazard_kind: str
    report_id: str
    location: LocationOut
    email_sent: bool
    created_at: datetime

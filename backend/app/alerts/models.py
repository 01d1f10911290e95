"""
models.py — Shared data structures for the hazard notification pipeline.

Defines:
    • HazardKind        — closed set of reportable ocean hazards
    • GeoPoint          — validated (lat, lng) pair
    • HazardEvent       — immutable description of a newly created report
    • RecipientProfile  — a registered user's notifiable contact surface
    • DeduplicationRecord — one authority-notification ledger row
    • AlertChannel      — delivery channel enum
    • AlertMessage      — rendered subject / text / html for one send
    • RecipientDeliveryRecord — per-recipient channel results
    • DispatchOutcome   — result of one fan-out pass

═══════════════════════════════════════════════════════════════════════════
SEVERITY LABELS
═══════════════════════════════════════════════════════════════════════════

Reports carry an integer severity 1–10. Human-facing messages use a label:

    Severity    Label
    ────────    ────────
    1 – 3       Low
    4 – 6       Medium
    7 – 8       High
    9 – 10      Critical

═══════════════════════════════════════════════════════════════════════════
CHANNELS
═══════════════════════════════════════════════════════════════════════════

    realtime         — "hazard-reported" event to every connected listener
    authority_email  — one fixed authority address, gated by the dedup ledger
    email            — proximity alert to each nearby recipient with an email
    sms              — proximity alert (WhatsApp or SMS) to each recipient
                       with a phone number
"""

from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


# ═══════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════

class HazardKind(str, Enum):
    """Reportable hazard types (values are the wire/display names)."""
    OIL_SPILL = "Oil Spill"
    DEBRIS    = "Debris"
    POLLUTION = "Pollution"
    OTHER     = "Other"


class AlertChannel(str, Enum):
    """Delivery channels used by the dispatcher."""
    REALTIME        = "realtime"
    AUTHORITY_EMAIL = "authority_email"
    EMAIL           = "email"
    SMS             = "sms"


# ═══════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════

def _now() -> datetime:
    return datetime.now(timezone.utc)


def severity_label(severity: int) -> str:
    """Map a 1–10 severity to Low / Medium / High / Critical."""
    if severity <= 3:
        return "Low"
    if severity <= 6:
        return "Medium"
    if severity <= 8:
        return "High"
    return "Critical"


# ═══════════════════════════════════════════════════════════════════════════
# Value Objects
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class GeoPoint:
    """A geographic point in decimal degrees."""
    lat: float
    lng: float

    @property
    def is_valid(self) -> bool:
        return (
            isinstance(self.lat, (int, float))
            and isinstance(self.lng, (int, float))
            and math.isfinite(self.lat)
            and math.isfinite(self.lng)
            and -90.0 <= self.lat <= 90.0
            and -180.0 <= self.lng <= 180.0
        )

    def to_dict(self) -> Dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}


@dataclass(frozen=True)
class HazardEvent:
    """
    A newly created hazard report, as seen by the notification pipeline.

    Built once by the ingestion flow after the report row is committed and
    handed to the dispatcher exactly once. Coordinates have already been
    validated by the request schema.
    """
    report_id: str
    kind: HazardKind
    severity: int
    location: GeoPoint
    reporter_id: str
    reporter_name: str
    created_at: datetime = field(default_factory=_now)
    description: Optional[str] = None
    image_url: Optional[str] = None

    @property
    def severity_label(self) -> str:
        return severity_label(self.severity)

    def to_realtime_payload(self) -> Dict[str, Any]:
        """Payload of the 'hazard-reported' event."""
        return {
            "id": self.report_id,
            "type": self.kind.value,
            "location": self.location.to_dict(),
            "severity": self.severity,
            "description": self.description or "",
            "imageUrl": self.image_url or "",
            "reportedAt": self.created_at.isoformat(),
        }


@dataclass
class RecipientProfile:
    """
    A registered user who may receive proximity alerts.

    Attributes
    ----------
    recipient_id : str
    name : str
        Display name used in the greeting.
    email, phone : str | None
        Either may be missing; a profile with neither is still "found" by
        the index but receives nothing.
    location : GeoPoint | None
        Last known position; profiles without one are never selected.
    distance_m : float | None
        Filled in by the recipient index for the query that found it.
    """
    recipient_id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    location: Optional[GeoPoint] = None
    distance_m: Optional[float] = None

    @property
    def can_receive_email(self) -> bool:
        return bool(self.email)

    @property
    def can_receive_sms(self) -> bool:
        return bool(self.phone)


@dataclass(frozen=True)
class DeduplicationRecord:
    """One authority-notification attempt; rows are never updated or deleted."""
    hazard_kind: HazardKind
    report_id: str
    location: GeoPoint
    email_sent: bool
    created_at: datetime = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hazard_kind": self.hazard_kind.value,
            "report_id": self.report_id,
            "location": self.location.to_dict(),
            "email_sent": self.email_sent,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class AlertMessage:
    """Rendered content for a single send; html is used by email only."""
    subject: str
    text: str
    html: Optional[str] = None


# ═══════════════════════════════════════════════════════════════════════════
# Delivery Results
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class RecipientDeliveryRecord:
    """Aggregated delivery status for one recipient across all channels."""
    recipient_id: str
    name: str
    distance_m: Optional[float] = None
    channels_attempted: List[AlertChannel] = field(default_factory=list)
    channels_delivered: List[AlertChannel] = field(default_factory=list)
    channels_failed: List[AlertChannel] = field(default_factory=list)

    @property
    def is_reached(self) -> bool:
        """True if at least one channel succeeded."""
        return len(self.channels_delivered) > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recipient_id": self.recipient_id,
            "name": self.name,
            "distance_m": (
                round(self.distance_m, 1) if self.distance_m is not None else None
            ),
            "is_reached": self.is_reached,
            "channels_attempted": [c.value for c in self.channels_attempted],
            "channels_delivered": [c.value for c in self.channels_delivered],
            "channels_failed": [c.value for c in self.channels_failed],
        }


@dataclass
class DispatchOutcome:
    """
    Result of one dispatch pass for a hazard.

    authority_notified is None when no authority email was attempted
    (suppressed by the ledger, or the dispatch failed before that branch).
    """
    hazard_id: str
    recipients_found: int = 0
    realtime_broadcast: Optional[bool] = None
    authority_notified: Optional[bool] = None
    authority_suppressed: bool = False
    delivery_records: List[RecipientDeliveryRecord] = field(default_factory=list)
    channel_successes: Counter = field(default_factory=Counter)
    channel_failures: Counter = field(default_factory=Counter)
    started_at: datetime = field(default_factory=_now)
    completed_at: Optional[datetime] = None
    error: Optional[str] = None

    def record(self, channel: AlertChannel, delivered: bool) -> None:
        if delivered:
            self.channel_successes[channel.value] += 1
        else:
            self.channel_failures[channel.value] += 1

    @property
    def total_attempts(self) -> int:
        return sum(self.channel_successes.values()) + sum(self.channel_failures.values())

    @property
    def success(self) -> bool:
        """Completed without a dispatcher fault and with no failed channel."""
        return self.error is None and sum(self.channel_failures.values()) == 0

    @property
    def duration_ms(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds() * 1000

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hazard_id": self.hazard_id,
            "success": self.success,
            "recipients_found": self.recipients_found,
            "realtime_broadcast": self.realtime_broadcast,
            "authority_notified": self.authority_notified,
            "authority_suppressed": self.authority_suppressed,
            "total_attempts": self.total_attempts,
            "channel_successes": dict(self.channel_successes),
            "channel_failures": dict(self.channel_failures),
            "started_at": self.started_at.isoformat(),
            "completed_at": (
                self.completed_at.isoformat() if self.completed_at else None
            ),
            "error": self.error,
            "delivery_records": [r.to_dict() for r in self.delivery_records],
        }

"""
Shared fixtures: throwaway SQLite database, settings, fakes for channels.

Each test gets its own database file under tmp_path so concurrent sessions
opened by the dispatcher behave like separate connections to a real server.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional, Tuple

import pytest

from backend.app.alerts.channels.realtime import ConnectionManager
from backend.app.alerts.dedup_ledger import DuplicateSuppressionLedger
from backend.app.alerts.models import (
    AlertChannel,
    AlertMessage,
    GeoPoint,
    HazardEvent,
    HazardKind,
    RecipientProfile,
)
from backend.app.alerts.recipient_index import SQLRecipientIndex
from backend.app.core.config import Settings
from backend.app.core.database import build_engine, build_session_factory, init_db


# ═══════════════════════════════════════════════════════════════════════════
# Database
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
async def engine(tmp_path):
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'oceanguard.db'}")
    await init_db(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def index(session_factory):
    return SQLRecipientIndex(session_factory)


@pytest.fixture
def ledger(session_factory):
    return DuplicateSuppressionLedger(session_factory, box_degrees=0.1)


# ═══════════════════════════════════════════════════════════════════════════
# Settings
# ═══════════════════════════════════════════════════════════════════════════

def make_settings(**overrides) -> Settings:
    """Settings isolated from any local .env file."""
    values = dict(
        ENVIRONMENT="test",
        GEOCODE_CACHE_ENABLED=False,
        OCEAN_AUTHORITY_EMAIL="authority@ocean.example",
        EMAIL_SERVICE="gmail",
        EMAIL_USER="alerts@oceanguard.example",
        EMAIL_PASSWORD="app-password",
        TWILIO_ACCOUNT_SID="AC123",
        TWILIO_AUTH_TOKEN="token",
        TWILIO_WHATSAPP_NUMBER="whatsapp:+14155238886",
        CHANNEL_TIMEOUT_SECONDS=2.0,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings():
    return make_settings()


# ═══════════════════════════════════════════════════════════════════════════
# Builders
# ═══════════════════════════════════════════════════════════════════════════

def make_event(
    report_id: str = "rep-1",
    kind: HazardKind = HazardKind.OIL_SPILL,
    severity: int = 9,
    lat: float = 10.0,
    lng: float = 20.0,
    description: Optional[str] = "Thick slick near the reef",
) -> HazardEvent:
    return HazardEvent(
        report_id=report_id,
        kind=kind,
        severity=severity,
        location=GeoPoint(lat, lng),
        reporter_id="user-42",
        reporter_name="Meera",
        created_at=datetime(2026, 3, 1, 8, 30, tzinfo=timezone.utc),
        description=description,
        image_url="https://img.example/slick.jpg",
    )


def make_recipient(
    rid: str = "R001",
    name: str = "Arun",
    lat: float = 10.0005,
    lng: float = 20.0005,
    email: Optional[str] = "arun@example.com",
    phone: Optional[str] = "919876543210",
) -> RecipientProfile:
    return RecipientProfile(
        recipient_id=rid,
        name=name,
        email=email,
        phone=phone,
        location=GeoPoint(lat, lng) if lat is not None else None,
    )


# ═══════════════════════════════════════════════════════════════════════════
# Fakes
# ═══════════════════════════════════════════════════════════════════════════

class FakeSender:
    """Records every send; results can be scripted per contact."""

    def __init__(
        self,
        channel: AlertChannel,
        *,
        problem: Optional[str] = None,
        fail_for: Tuple[str, ...] = (),
        raise_for: Tuple[str, ...] = (),
    ):
        self.channel = channel
        self.problem = problem
        self.fail_for = set(fail_for)
        self.raise_for = set(raise_for)
        self.calls: List[Tuple[str, AlertMessage]] = []

    def configuration_problem(self) -> Optional[str]:
        return self.problem

    async def send(self, contact: str, message: AlertMessage) -> bool:
        self.calls.append((contact, message))
        if contact in self.raise_for:
            raise RuntimeError(f"provider exploded for {contact}")
        if self.problem is not None:
            return False
        return contact not in self.fail_for

    @property
    def contacts(self) -> List[str]:
        return [c for c, _ in self.calls]


class FakeBroadcaster:
    def __init__(self, result: bool = True, error: Optional[Exception] = None):
        self.manager = ConnectionManager()
        self.result = result
        self.error = error
        self.events: List[HazardEvent] = []

    async def broadcast(self, event: HazardEvent) -> bool:
        self.events.append(event)
        if self.error is not None:
            raise self.error
        return self.result


class FakeGeocoder:
    def __init__(self, address: str = "Gulf of Mannar, Tamil Nadu, India"):
        self.address = address
        self.calls: List[GeoPoint] = []

    async def describe(self, point: GeoPoint) -> str:
        self.calls.append(point)
        return self.address

    async def close(self) -> None:
        pass


class FakeWebSocket:
    """Minimal stand-in for starlette's WebSocket used by ConnectionManager."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.accepted = False
        self.sent: List[dict] = []

    async def accept(self) -> None:
        self.accepted = True

    async def send_json(self, data: dict) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(data)

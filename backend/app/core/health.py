"""
Health check aggregation — deep health probe for the alerting service.

Checks:
    • Database connectivity (reports, recipients, ledger)
    • Cache connectivity (Redis; optional, so at worst DEGRADED)
    • Outbound channel configuration (email, WhatsApp/SMS, authority address)
    • Realtime listener count

Returns a structured health report suitable for:
    - Kubernetes liveness/readiness probes
    - Load balancer health checks
    - Monitoring dashboards
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from backend.app.core.cache import cache_ping
from backend.app.core.config import settings

if TYPE_CHECKING:
    from backend.app.alerts.dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"  # partial functionality
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    name: str
    status: HealthStatus = HealthStatus.HEALTHY
    latency_ms: float = 0.0
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            d["message"] = self.message
        if self.details:
            d["details"] = self.details
        return d


@dataclass
class HealthReport:
    status: HealthStatus = HealthStatus.HEALTHY
    version: str = settings.APP_VERSION
    environment: str = settings.ENVIRONMENT
    timestamp: str = ""
    uptime_seconds: float = 0.0
    components: List[ComponentHealth] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "version": self.version,
            "environment": self.environment,
            "timestamp": self.timestamp or datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": round(self.uptime_seconds, 1),
            "components": [c.to_dict() for c in self.components],
        }


# Track application start time
_start_time = time.monotonic()


async def check_database(engine: AsyncEngine) -> ComponentHealth:
    """Round-trip a SELECT 1."""
    comp = ComponentHealth(name="database")
    start = time.monotonic()
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        comp.message = "Connection OK"
        comp.details = {"url": engine.url.render_as_string(hide_password=True)}
    except Exception as e:
        comp.status = HealthStatus.UNHEALTHY
        comp.message = str(e)
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def check_redis() -> ComponentHealth:
    """Redis only backs the geocode cache; losing it degrades, never fails."""
    comp = ComponentHealth(name="redis")
    start = time.monotonic()
    if await cache_ping():
        comp.message = "Cache available"
    else:
        comp.status = HealthStatus.DEGRADED
        comp.message = "Cache unreachable; geocoding runs uncached"
    comp.details = {"url": settings.REDIS_URL.split("@")[-1]}
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


def check_channels(dispatcher: "NotificationDispatcher") -> ComponentHealth:
    """Degraded while any outbound channel is missing configuration."""
    comp = ComponentHealth(name="notification_channels")
    start = time.monotonic()
    problems = dispatcher.configuration_problems()
    if problems:
        comp.status = HealthStatus.DEGRADED
        comp.message = f"Unconfigured: {', '.join(c for c, _ in problems)}"
        comp.details = {channel: remediation for channel, remediation in problems}
    else:
        comp.message = "All channels configured"
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


def check_realtime(dispatcher: "NotificationDispatcher") -> ComponentHealth:
    comp = ComponentHealth(name="realtime")
    comp.details = {"listeners": dispatcher.broadcaster.manager.listener_count}
    comp.message = f"{comp.details['listeners']} listener(s) connected"
    return comp


async def run_health_check(
    engine: AsyncEngine,
    dispatcher: Optional["NotificationDispatcher"] = None,
) -> HealthReport:
    """Run all health checks and aggregate into a report."""
    report = HealthReport(
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime_seconds=time.monotonic() - _start_time,
    )

    report.components.append(await check_database(engine))
    report.components.append(await check_redis())
    if dispatcher is not None:
        report.components.append(check_channels(dispatcher))
        report.components.append(check_realtime(dispatcher))

    # Aggregate status
    statuses = [c.status for c in report.components]
    if HealthStatus.UNHEALTHY in statuses:
        report.status = HealthStatus.UNHEALTHY
    elif HealthStatus.DEGRADED in statuses:
        report.status = HealthStatus.DEGRADED
    else:
        report.status = HealthStatus.HEALTHY

    if report.status != HealthStatus.HEALTHY:
        logger.debug("Health check %s: %s", report.status.value, [
            c.name for c in report.components if c.status != HealthStatus.HEALTHY
        ])
    return report

"""
ingestion.py — From a submitted report to a scheduled notification pass.

    POST /api/v1/hazards
        │
        ▼
    HazardReportIn (validated, canonical location)
        │
        ▼
    HazardReportService.create_report
        ├── INSERT hazard_reports, COMMIT
        ├── HazardEvent from the stored row
        └── BackgroundNotifier.schedule(event)   ← returns immediately
        │
        ▼
    201 Created (stored report; never reflects notification results)

The notifier keeps a strong reference to every in-flight dispatch task so
it is not garbage-collected mid-flight, and drains them on shutdown.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional, Set

from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.alerts.dispatcher import NotificationDispatcher
from backend.app.alerts.models import DispatchOutcome, GeoPoint, HazardEvent, HazardKind
from backend.app.alerts.tables import HazardReportRow
from backend.app.api.schemas import HazardReportIn

logger = logging.getLogger(__name__)


def event_from_report(report: HazardReportRow) -> HazardEvent:
    """Build the pipeline's view of a stored report."""
    created_at = report.created_at or datetime.now(timezone.utc)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return HazardEvent(
        report_id=report.id,
        kind=HazardKind(report.hazard_kind),
        severity=report.severity,
        location=GeoPoint(report.latitude, report.longitude),
        reporter_id=report.reporter_id,
        reporter_name=report.reporter_name,
        created_at=created_at,
        description=report.description,
        image_url=report.image_url,
    )


async def notify_for_hazard(
    report: HazardReportRow,
    dispatcher: NotificationDispatcher,
) -> DispatchOutcome:
    """Run a full notification pass for a persisted report and wait for it."""
    return await dispatcher.dispatch_for_hazard(event_from_report(report))


class BackgroundNotifier:
    """Runs dispatches as background tasks detached from the request."""

    def __init__(self, dispatcher: NotificationDispatcher):
        self.dispatcher = dispatcher
        self._tasks: Set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def schedule(self, event: HazardEvent) -> asyncio.Task:
        task = asyncio.create_task(
            self.dispatcher.dispatch_for_hazard(event),
            name=f"dispatch-{event.report_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        logger.debug("Scheduled notifications for hazard %s", event.report_id)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("Notification task %s was cancelled", task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            logger.critical(
                "Notification task %s crashed: %s", task.get_name(), exc,
                exc_info=exc,
            )
            return
        outcome: DispatchOutcome = task.result()
        logger.debug(
            "Notification task %s finished: success=%s attempts=%d",
            task.get_name(), outcome.success, outcome.total_attempts,
        )

    async def drain(self, timeout: Optional[float] = None) -> int:
        """
        Wait for in-flight dispatches; returns how many were still pending
        (and therefore cancelled) when the timeout expired.
        """
        if not self._tasks:
            return 0
        pending_tasks = list(self._tasks)
        logger.info("Draining %d notification task(s)", len(pending_tasks))
        _, pending = await asyncio.wait(pending_tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning("Cancelled %d notification task(s) on shutdown", len(pending))
        return len(pending)


class HazardReportService:
    """Persists reports and hands them to the notifier."""

    def __init__(self, notifier: BackgroundNotifier):
        self.notifier = notifier

    async def create_report(
        self,
        report_in: HazardReportIn,
        session: AsyncSession,
    ) -> HazardReportRow:
        row = HazardReportRow(
            hazard_kind=report_in.kind.value,
            severity=report_in.severity,
            description=report_in.description,
            image_url=report_in.image_url,
            latitude=report_in.location.lat,
            longitude=report_in.location.lng,
            reporter_id=report_in.reporter_id,
            reporter_name=report_in.reporter_name,
            created_at=datetime.now(timezone.utc),
        )
        session.add(row)
        await session.commit()

        logger.info(
            "Hazard report %s stored: %s severity=%d at (%.4f, %.4f)",
            row.id, row.hazard_kind, row.severity, row.latitude, row.longitude,
            extra={"hazard_id": row.id, "hazard_kind": row.hazard_kind},
        )

        self.notifier.schedule(event_from_report(row))
        return row

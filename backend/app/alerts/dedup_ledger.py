"""
dedup_ledger.py — Duplicate suppression for authority notifications.

The ocean authority should hear about an incident once, not once per
report. Every authority email attempt is appended to the ledger; a new
hazard is suppressed when an earlier *successful* attempt exists for the
same kind inside a ±box around the new location:

    same hazard_kind
    AND email_sent = true
    AND |lat − lat₀| ≤ box
    AND |lng − lng₀| ≤ box            (box = 0.1° by default, inclusive)

Rows are never updated or deleted, so a failed send (email_sent = false)
never suppresses later reports and the authority will be tried again.
There is no time window: a successful notification suppresses the area
for that kind indefinitely.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.alerts.models import DeduplicationRecord, GeoPoint, HazardKind
from backend.app.alerts.tables import AuthorityNotificationRow
from backend.app.core.config import settings
from backend.app.core.errors import LedgerUnavailableError
from backend.app.spatial.radius_utils import degree_box

logger = logging.getLogger(__name__)


def _to_record(row: AuthorityNotificationRow) -> DeduplicationRecord:
    return DeduplicationRecord(
        hazard_kind=HazardKind(row.hazard_kind),
        report_id=row.report_id,
        location=GeoPoint(row.latitude, row.longitude),
        email_sent=row.email_sent,
        created_at=row.created_at,
    )


class DuplicateSuppressionLedger:
    """Append-only ledger of authority notification attempts."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        box_degrees: Optional[float] = None,
    ):
        self._session_factory = session_factory
        self.box_degrees = (
            box_degrees if box_degrees is not None else settings.DEDUP_BOX_DEGREES
        )

    async def should_notify_authority(self, kind: HazardKind, location: GeoPoint) -> bool:
        """
        False iff a successful notification for the same kind exists within
        the ±box around location.

        Raises
        ------
        LedgerUnavailableError
        """
        box = degree_box(location, self.box_degrees)
        stmt = (
            select(AuthorityNotificationRow.id)
            .where(
                AuthorityNotificationRow.hazard_kind == kind.value,
                AuthorityNotificationRow.email_sent.is_(True),
                AuthorityNotificationRow.latitude.between(box.min_lat, box.max_lat),
                AuthorityNotificationRow.longitude.between(box.min_lng, box.max_lng),
            )
            .limit(1)
        )
        try:
            async with self._session_factory() as session:
                existing = (await session.execute(stmt)).scalar_one_or_none()
        except (SQLAlchemyError, OSError) as exc:
            raise LedgerUnavailableError("lookup", str(exc)) from exc

        if existing is not None:
            logger.info(
                "Authority already notified for %s near (%.4f, %.4f); suppressing",
                kind.value, location.lat, location.lng,
            )
            return False
        return True

    async def record_attempt(
        self,
        kind: HazardKind,
        location: GeoPoint,
        report_id: str,
        succeeded: bool,
    ) -> DeduplicationRecord:
        """
        Append one attempt, successful or not.

        Raises
        ------
        LedgerUnavailableError
        """
        row = AuthorityNotificationRow(
            report_id=report_id,
            hazard_kind=kind.value,
            latitude=location.lat,
            longitude=location.lng,
            email_sent=succeeded,
        )
        try:
            async with self._session_factory() as session:
                session.add(row)
                await session.commit()
        except (SQLAlchemyError, OSError) as exc:
            raise LedgerUnavailableError("write", str(exc)) from exc

        logger.debug(
            "Ledger: %s report=%s email_sent=%s", kind.value, report_id, succeeded,
        )
        return _to_record(row)

    async def history(
        self,
        kind: Optional[HazardKind] = None,
        *,
        limit: int = 50,
    ) -> List[DeduplicationRecord]:
        """Most recent attempts first, optionally for one hazard kind."""
        stmt = select(AuthorityNotificationRow).order_by(
            AuthorityNotificationRow.created_at.desc(),
            AuthorityNotificationRow.id.desc(),
        )
        if kind is not None:
            stmt = stmt.where(AuthorityNotificationRow.hazard_kind == kind.value)
        stmt = stmt.limit(limit)

        try:
            async with self._session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except (SQLAlchemyError, OSError) as exc:
            raise LedgerUnavailableError("history", str(exc)) from exc
        return [_to_record(r) for r in rows]

"""
recipient_index.py — Proximity lookup of registered recipients.

    find_within_radius(center, radius_m) → [RecipientProfile, ...]

Query strategy:

    ┌──────────────────────────────┐
    │ 1. SQL bounding-box prefilter │  lat BETWEEN … AND lng BETWEEN …
    │    (indexed, coarse)          │  active, position not null
    └──────────────┬───────────────┘
                   ▼
    ┌──────────────────────────────┐
    │ 2. Haversine ≤ radius_m       │  exact, inclusive at the boundary
    └──────────────┬───────────────┘
                   ▼
    ┌──────────────────────────────┐
    │ 3. Sort by (distance, id)     │  deterministic order
    └──────────────────────────────┘

Recipients without a stored position are never returned. Storage failures
surface as RecipientLookupError; the dispatcher treats that as "nobody
nearby" and keeps going.
"""

from __future__ import annotations

import logging
from typing import List

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.alerts.models import GeoPoint, RecipientProfile
from backend.app.alerts.tables import RecipientRow
from backend.app.core.errors import RecipientLookupError
from backend.app.spatial.radius_utils import haversine_m, radius_bounding_box

logger = logging.getLogger(__name__)


def _to_profile(row: RecipientRow, distance_m: float) -> RecipientProfile:
    return RecipientProfile(
        recipient_id=row.id,
        name=row.name,
        email=row.email or None,
        phone=row.phone or None,
        location=GeoPoint(row.latitude, row.longitude),
        distance_m=distance_m,
    )


class SQLRecipientIndex:
    """Recipient directory backed by the `recipients` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def find_within_radius(
        self,
        center: GeoPoint,
        radius_m: float,
    ) -> List[RecipientProfile]:
        """
        All active recipients whose stored position lies within radius_m
        meters (great-circle) of center, nearest first.

        Raises
        ------
        ValueError
            radius_m is not positive or center is out of range.
        RecipientLookupError
            The directory could not be queried.
        """
        if radius_m <= 0:
            raise ValueError(f"radius_m must be positive, got {radius_m}")
        if not center.is_valid:
            raise ValueError(f"Invalid center coordinates: {center}")

        box = radius_bounding_box(center, radius_m)
        stmt = select(RecipientRow).where(
            RecipientRow.is_active.is_(True),
            RecipientRow.latitude.is_not(None),
            RecipientRow.longitude.is_not(None),
            RecipientRow.latitude.between(box.min_lat, box.max_lat),
        )
        if box.bounds_longitude:
            stmt = stmt.where(RecipientRow.longitude.between(box.min_lng, box.max_lng))

        try:
            async with self._session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except (SQLAlchemyError, OSError) as exc:
            raise RecipientLookupError(str(exc), radius_m=radius_m) from exc

        matches: List[RecipientProfile] = []
        for row in rows:
            distance = haversine_m(center, GeoPoint(row.latitude, row.longitude))
            if distance <= radius_m:
                matches.append(_to_profile(row, distance))

        matches.sort(key=lambda p: (p.distance_m, p.recipient_id))
        logger.debug(
            "Radius query (%.4f, %.4f) r=%.0fm: %d candidates, %d within radius",
            center.lat, center.lng, radius_m, len(rows), len(matches),
        )
        return matches

    async def upsert(self, profile: RecipientProfile, *, is_active: bool = True) -> None:
        """Insert or update a recipient and its last known position."""
        try:
            async with self._session_factory() as session:
                row = await session.get(RecipientRow, profile.recipient_id)
                if row is None:
                    row = RecipientRow(id=profile.recipient_id)
                    session.add(row)
                row.name = profile.name
                row.email = profile.email
                row.phone = profile.phone
                row.latitude = profile.location.lat if profile.location else None
                row.longitude = profile.location.lng if profile.location else None
                row.is_active = is_active
                await session.commit()
        except (SQLAlchemyError, OSError) as exc:
            raise RecipientLookupError(
                str(exc), recipient_id=profile.recipient_id,
            ) from exc

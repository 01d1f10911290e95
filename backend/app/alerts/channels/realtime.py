"""
realtime.py — "hazard-reported" events for connected map clients.

Clients open a WebSocket on /ws/hazards and receive, for every new report:

    {"event": "hazard-reported",
     "data":  {"id", "type", "location": {"lat", "lng"}, "severity",
               "description", "imageUrl", "reportedAt"}}

Sends are fire-and-forget per socket with a short timeout; a socket that
errors or stalls is dropped from the listener set. The broadcast fails
only when there were listeners and none of them could be reached.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Set

from fastapi import WebSocket

from backend.app.alerts.models import HazardEvent
from backend.app.core.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

HAZARD_REPORTED_EVENT = "hazard-reported"


class ConnectionManager:
    """Tracks live WebSocket listeners."""

    def __init__(self):
        self.active: Set[WebSocket] = set()

    async def connect(self, ws: WebSocket) -> None:
        await ws.accept()
        self.active.add(ws)
        logger.debug("Realtime listener connected (%d active)", len(self.active))

    def disconnect(self, ws: WebSocket) -> None:
        self.active.discard(ws)

    @property
    def listener_count(self) -> int:
        return len(self.active)


class RealtimeBroadcaster:
    """Pushes hazard events to every connected listener."""

    def __init__(
        self,
        manager: Optional[ConnectionManager] = None,
        settings: Optional[Settings] = None,
    ):
        self.manager = manager or ConnectionManager()
        self.settings = settings or default_settings

    async def _send_one(self, ws: WebSocket, message: Dict[str, Any]) -> bool:
        try:
            await asyncio.wait_for(
                ws.send_json(message),
                timeout=self.settings.REALTIME_SEND_TIMEOUT_SECONDS,
            )
            return True
        except Exception as e:
            logger.debug("Dropping realtime listener: %s", e)
            return False

    async def broadcast(self, event: HazardEvent) -> bool:
        message = {"event": HAZARD_REPORTED_EVENT, "data": event.to_realtime_payload()}
        listeners = list(self.manager.active)
        if not listeners:
            logger.debug("No realtime listeners for hazard %s", event.report_id)
            return True

        results = await asyncio.gather(
            *(self._send_one(ws, message) for ws in listeners)
        )
        for ws, ok in zip(listeners, results):
            if not ok:
                self.manager.disconnect(ws)

        delivered = sum(results)
        logger.info(
            "Realtime broadcast for hazard %s: %d/%d listeners",
            event.report_id, delivered, len(listeners),
            extra={"hazard_id": event.report_id, "channel": "realtime"},
        )
        return delivered > 0

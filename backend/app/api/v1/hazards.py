"""
FastAPI routes: hazard reporting and notification status.

    POST /api/v1/hazards                          — submit a report (201)
    GET  /api/v1/hazards/notifications/channels   — channel configuration
    GET  /api/v1/hazards/notifications/ledger     — authority notification ledger
    WS   /ws/hazards                              — realtime "hazard-reported" feed

The notification pipeline components live on app.state (built in the
lifespan handler in main.py).
"""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, WebSocket, WebSocketDisconnect
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.alerts.ingestion import HazardReportService
from backend.app.alerts.models import AlertChannel, HazardKind
from backend.app.api.schemas import (
    ChannelStatusOut,
    ChannelStatusResponse,
    HazardReportIn,
    HazardReportOut,
    LedgerEntryOut,
    LocationOut,
)
from backend.app.core.database import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/hazards", tags=["hazards"])
ws_router = APIRouter(tags=["realtime"])


@router.post("", response_model=HazardReportOut, status_code=201)
async def create_hazard_report(
    report_in: HazardReportIn,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> HazardReportOut:
    """
    Store a hazard report and schedule its notifications.

    Responds as soon as the report is committed; delivery happens in the
    background and never changes this response.
    """
    service = HazardReportService(request.app.state.notifier)
    row = await service.create_report(report_in, db)
    return HazardReportOut.from_row(row)


@router.get("/notifications/channels", response_model=ChannelStatusResponse)
async def notification_channels(request: Request) -> ChannelStatusResponse:
    """Configuration status of every outbound channel."""
    state = request.app.state
    dispatcher = state.dispatcher
    problems = dict(dispatcher.configuration_problems())

    channels = [
        ChannelStatusOut(
            channel=name,
            configured=name not in problems,
            remediation=problems.get(name),
        )
        for name in (
            dispatcher.email_sender.channel.value,
            dispatcher.sms_sender.channel.value,
            AlertChannel.AUTHORITY_EMAIL.value,
        )
    ]
    channels.append(ChannelStatusOut(channel=AlertChannel.REALTIME.value, configured=True))

    return ChannelStatusResponse(
        channels=channels,
        realtime_listeners=dispatcher.broadcaster.manager.listener_count,
        notifications_in_flight=state.notifier.in_flight,
    )


@router.get("/notifications/ledger", response_model=List[LedgerEntryOut])
async def notification_ledger(
    request: Request,
    kind: Optional[HazardKind] = Query(None, description="Filter by hazard kind"),
    limit: int = Query(50, ge=1, le=500),
) -> List[LedgerEntryOut]:
    """Most recent authority notification attempts, newest first."""
    records = await request.app.state.dispatcher.ledger.history(kind, limit=limit)
    return [
        LedgerEntryOut(
            hazard_kind=r.hazard_kind.value,
            report_id=r.report_id,
            location=LocationOut(lat=r.location.lat, lng=r.location.lng),
            email_sent=r.email_sent,
            created_at=r.created_at,
        )
        for r in records
    ]


@ws_router.websocket("/ws/hazards")
async def hazards_feed(websocket: WebSocket) -> None:
    manager = websocket.app.state.dispatcher.broadcaster.manager
    await manager.connect(websocket)
    try:
        while True:
            # Inbound messages are ignored; receiving keeps the disconnect visible
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(websocket)

"""
FastAPI application entry point.

Run with:
    uvicorn backend.app.main:app --reload --port 8000

Or from the project root:
    python -m uvicorn backend.app.main:app --reload
"""

from contextlib import asynccontextmanager
from typing import Optional, Tuple

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

# ── Core infrastructure ──
from backend.app.core.cache import close_redis
from backend.app.core.config import Settings, settings
from backend.app.core.database import close_db, get_engine, get_session_factory, init_db
from backend.app.core.errors import register_error_handlers
from backend.app.core.health import HealthStatus, run_health_check
from backend.app.core.logging_config import get_logger, setup_logging
from backend.app.core.middleware import RequestLoggingMiddleware

# ── Notification pipeline ──
from backend.app.alerts.channels.email_alert import EmailSender
from backend.app.alerts.channels.realtime import RealtimeBroadcaster
from backend.app.alerts.channels.sms_gateway import SmsSender
from backend.app.alerts.dedup_ledger import DuplicateSuppressionLedger
from backend.app.alerts.dispatcher import NotificationDispatcher
from backend.app.alerts.geocoding import ReverseGeocoder
from backend.app.alerts.ingestion import BackgroundNotifier
from backend.app.alerts.recipient_index import SQLRecipientIndex

# ── API routers ──
from backend.app.api.v1.hazards import router as hazard_router
from backend.app.api.v1.hazards import ws_router as hazard_ws_router

# ── Initialise logging ──
setup_logging()
logger = get_logger(__name__)


def build_pipeline(
    session_factory: async_sessionmaker[AsyncSession],
    app_settings: Optional[Settings] = None,
) -> Tuple[NotificationDispatcher, BackgroundNotifier]:
    """Wire the dispatcher and its collaborators once per process."""
    app_settings = app_settings or settings
    dispatcher = NotificationDispatcher(
        index=SQLRecipientIndex(session_factory),
        ledger=DuplicateSuppressionLedger(
            session_factory, box_degrees=app_settings.DEDUP_BOX_DEGREES,
        ),
        email_sender=EmailSender(app_settings),
        sms_sender=SmsSender(app_settings),
        broadcaster=RealtimeBroadcaster(settings=app_settings),
        geocoder=ReverseGeocoder(app_settings),
        settings=app_settings,
    )
    return dispatcher, BackgroundNotifier(dispatcher)


# ── Application lifespan (startup / shutdown) ──

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage startup and shutdown events."""
    logger.info(
        "Starting %s v%s [%s]",
        settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT,
    )
    if not settings.is_production:
        await init_db()

    dispatcher, notifier = build_pipeline(get_session_factory())
    app.state.dispatcher = dispatcher
    app.state.notifier = notifier

    for channel, remediation in dispatcher.configuration_problems():
        logger.warning("Channel '%s' is not configured. %s", channel, remediation)

    yield

    logger.info("Shutting down %s", settings.APP_NAME)
    await notifier.drain(timeout=settings.NOTIFIER_DRAIN_TIMEOUT_SECONDS)
    await dispatcher.geocoder.close()
    await close_redis()
    await close_db()


# ── Create application ──

app = FastAPI(
    title=settings.APP_NAME,
    description=(
        "Ocean hazard reporting and notification core. "
        "Stores citizen hazard reports, pushes them to live map clients, "
        "notifies the ocean authority once per incident area, and alerts "
        "registered users within 10 km by email and WhatsApp/SMS."
    ),
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# ── Middleware stack (order matters — outermost first) ──

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS if not settings.CORS_ALLOW_ALL else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

# ── Error handlers ──
register_error_handlers(app)

# ── Register routers ──
app.include_router(hazard_router)
app.include_router(hazard_ws_router)


# ── Root & health endpoints ──

@app.get("/", tags=["root"])
async def root():
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "modules": [
            "hazard-reports",
            "realtime-feed",
            "authority-notification",
            "proximity-alerts",
        ],
        "docs": "/docs",
    }


@app.get("/health", tags=["health"])
async def health_check():
    """Deep health probe — checks all subsystems."""
    report = await run_health_check(get_engine(), getattr(app.state, "dispatcher", None))
    return report.to_dict()


@app.get("/health/live", tags=["health"])
async def liveness():
    """Kubernetes liveness probe — is the process alive?"""
    return {"status": "alive"}


@app.get("/health/ready", tags=["health"])
async def readiness():
    """Kubernetes readiness probe — can we serve traffic?"""
    report = await run_health_check(get_engine(), getattr(app.state, "dispatcher", None))
    if report.status == HealthStatus.UNHEALTHY:
        return JSONResponse(status_code=503, content=report.to_dict())
    return report.to_dict()

"""
Centralised error handling — exception hierarchy + FastAPI handlers.

Provides:
    • Domain-specific exception classes
    • Consistent JSON error response format
    • Automatic logging of unhandled errors
    • Request context in error responses (non-production)

Notification-side errors (RecipientLookupError, LedgerUnavailableError,
ChannelNotConfiguredError) are raised inside the alerting core and
absorbed there; they reach the HTTP layer only through the admin
endpoints that read the ledger.

Usage:
    from backend.app.core.errors import (
        OceanGuardError,
        RecipientLookupError,
        register_error_handlers,
    )

    raise RecipientLookupError("connection refused", radius_m=10000)
"""

from __future__ import annotations

import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from backend.app.core.config import settings

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Exception Hierarchy
# ═══════════════════════════════════════════════════════════════════════════

class OceanGuardError(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


class RecipientLookupError(OceanGuardError):
    """The recipient directory / geospatial index could not be queried."""

    def __init__(self, message: str = "", **details: Any):
        super().__init__(
            message=f"Recipient lookup failed: {message}",
            status_code=503,
            error_code="RECIPIENT_LOOKUP_FAILED",
            details=details,
        )


class LedgerUnavailableError(OceanGuardError):
    """The duplicate-suppression ledger could not be read or written."""

    def __init__(self, operation: str, message: str = ""):
        super().__init__(
            message=f"Notification ledger {operation} failed: {message}",
            status_code=503,
            error_code="LEDGER_UNAVAILABLE",
            details={"operation": operation},
        )


class ChannelNotConfiguredError(OceanGuardError):
    """A delivery channel is missing credentials or a destination."""

    def __init__(self, channel: str, remediation: str):
        super().__init__(
            message=f"Channel '{channel}' is not configured. {remediation}",
            status_code=503,
            error_code="CHANNEL_NOT_CONFIGURED",
            details={"channel": channel, "remediation": remediation},
        )


# ═══════════════════════════════════════════════════════════════════════════
# Error Response Builder
# ═══════════════════════════════════════════════════════════════════════════

def _build_error_response(
    status_code: int,
    error_code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> JSONResponse:
    """Build a consistent JSON error response."""
    body: Dict[str, Any] = {
        "error": {
            "code": error_code,
            "message": message,
            "status": status_code,
        }
    }

    if details:
        body["error"]["details"] = details

    if request and not settings.is_production:
        body["error"]["path"] = str(request.url.path)
        body["error"]["method"] = request.method

    return JSONResponse(status_code=status_code, content=body)


# ═══════════════════════════════════════════════════════════════════════════
# FastAPI Exception Handlers
# ═══════════════════════════════════════════════════════════════════════════

def register_error_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app."""

    @app.exception_handler(OceanGuardError)
    async def handle_app_error(request: Request, exc: OceanGuardError):
        logger.error(
            "API Error [%s]: %s | details=%s",
            exc.error_code, exc.message, exc.details,
        )
        return _build_error_response(
            exc.status_code, exc.error_code, exc.message,
            exc.details, request,
        )

    @app.exception_handler(ValueError)
    async def handle_value_error(request: Request, exc: ValueError):
        logger.warning("ValueError: %s", exc)
        return _build_error_response(
            422, "VALIDATION_ERROR", str(exc), request=request,
        )

    @app.exception_handler(Exception)
    async def handle_unhandled(request: Request, exc: Exception):
        logger.critical(
            "Unhandled exception: %s\n%s",
            exc, traceback.format_exc(),
        )
        message = str(exc) if settings.DEBUG else "Internal server error"
        details = (
            {"traceback": traceback.format_exc().split("\n")}
            if settings.DEBUG else None
        )
        return _build_error_response(
            500, "INTERNAL_ERROR", message, details, request,
        )

"""
Error hierarchy and the FastAPI handlers that render it.

Every error leaving the API has the same envelope:

    {"error": {"code": "FORBIDDEN", "message": "...", "status": 403,
               "details": {...}}}

Outside production the envelope also names the request path and method.

Usage:
    from migun.app.core.errors import ValidationError, register_error_handlers

    raise ValidationError("Area name required", field="area")
"""

from __future__ import annotations

import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from migun.app.core.config import settings

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Exception Hierarchy
# ═══════════════════════════════════════════════════════════════════════════

class MigunError(Exception):
    """Base exception; carries the HTTP status and a stable error code."""

    status_code = 500
    error_code = "INTERNAL_ERROR"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = {k: v for k, v in details.items() if v is not None}


class ValidationError(MigunError):
    """Unusable request parameters (400)."""

    status_code = 400
    error_code = "VALIDATION_ERROR"

    def __init__(self, message: str, *, field: Optional[str] = None, **details: Any):
        super().__init__(message, field=field, **details)


class ForbiddenError(MigunError):
    """Endpoint disabled in the current environment (403)."""

    status_code = 403
    error_code = "FORBIDDEN"


class FeedFormatError(MigunError):
    """Upstream payload matches neither the live nor the history contract.

    Raised by the feed parsers; the adapter logs it and treats the cycle
    as a failed fetch, so it only reaches a client through direct use.
    """

    status_code = 502
    error_code = "FEED_FORMAT_ERROR"

    def __init__(self, feed: str, reason: str = "", **details: Any):
        super().__init__(f"Unrecognised {feed} feed payload: {reason}", feed=feed, **details)
        self.feed = feed


# ═══════════════════════════════════════════════════════════════════════════
# Envelope
# ═══════════════════════════════════════════════════════════════════════════

def error_envelope(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    error: Dict[str, Any] = {"code": code, "message": message, "status": status_code}
    if details:
        error["details"] = details
    if not settings.is_production:
        error["path"] = request.url.path
        error["method"] = request.method
    return JSONResponse(status_code=status_code, content={"error": error})


# ═══════════════════════════════════════════════════════════════════════════
# Handlers
# ═══════════════════════════════════════════════════════════════════════════

def register_error_handlers(app: FastAPI) -> None:
    """Attach the envelope handlers to ``app``."""

    @app.exception_handler(MigunError)
    async def handle_migun_error(request: Request, exc: MigunError):
        logger.log(
            logging.WARNING if exc.status_code < 500 else logging.ERROR,
            "%s %s → %s: %s",
            request.method, request.url.path, exc.error_code, exc.message,
        )
        return error_envelope(request, exc.status_code, exc.error_code, exc.message, exc.details)

    @app.exception_handler(RequestValidationError)
    async def handle_bad_params(request: Request, exc: RequestValidationError):
        problems = [
            {"field": ".".join(str(p) for p in err.get("loc", ())[1:]), "message": err.get("msg")}
            for err in exc.errors()
        ]
        logger.warning("Rejected parameters on %s: %s", request.url.path, problems)
        return error_envelope(
            request, 400, ValidationError.error_code, "Invalid request parameters",
            {"errors": problems},
        )

    @app.exception_handler(Exception)
    async def handle_unhandled(request: Request, exc: Exception):
        logger.critical("Unhandled exception on %s", request.url.path, exc_info=exc)
        if settings.DEBUG:
            return error_envelope(
                request, 500, MigunError.error_code, str(exc),
                {"traceback": traceback.format_exception(type(exc), exc, exc.__traceback__)},
            )
        return error_envelope(request, 500, MigunError.error_code, "Internal server error")

"""
Per-request logging and correlation.

Every response carries ``X-Request-ID`` (echoed from the caller when given)
and ``X-Process-Time``. Countdown clients poll ``/api/alerts`` every two
seconds each, so successful snapshot reads and liveness checks log at DEBUG;
anything else logs at INFO, and 4xx/5xx at WARNING.
"""

from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from migun.app.core.logging_config import bind_request, unbind_request

logger = logging.getLogger(__name__)

POLLED_PATHS = frozenset({"/api/alerts", "/health/live"})
UNLOGGED_PREFIXES = ("/docs", "/redoc", "/openapi", "/favicon")


def access_log_level(path: str, status_code: int) -> int:
    """Level for one access line; ``0`` means the request is not logged."""
    if path.startswith(UNLOGGED_PREFIXES):
        return 0
    if status_code >= 400:
        return logging.WARNING
    if path in POLLED_PATHS:
        return logging.DEBUG
    return logging.INFO


def client_address(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "-"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Bind the request to the log context and write one access line."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:16]
        path = request.url.path
        token = bind_request(
            request_id=request_id,
            method=request.method,
            endpoint=path,
            client=client_address(request),
        )
        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers["X-Request-ID"] = request_id
            response.headers["X-Process-Time"] = f"{(time.perf_counter() - started) * 1000:.1f}ms"
            return response
        finally:
            duration_ms = (time.perf_counter() - started) * 1000
            level = access_log_level(path, status_code)
            if level:
                logger.log(
                    level,
                    "%s %s → %d (%.1fms)",
                    request.method, path, status_code, duration_ms,
                    extra={"endpoint": path, "status_code": status_code, "duration_ms": duration_ms},
                )
            unbind_request(token)

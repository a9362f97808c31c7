"""
Logging setup for the alert service.

Two renderings of the same records:
    • production  → one JSON object per line, for log shipping
    • elsewhere   → short coloured lines tagged with the request and feed

Alert lifecycle logs pass domain fields through ``extra``:

    logger.info("New alert for: %s", area, extra={"area": area, "feed": "live"})

and the formatters pick them up from ``LOG_EXTRAS``. The request being served
(if any) is bound by the middleware and attached to every line logged while
handling it.
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from migun.app.core.config import settings

LOG_EXTRAS = (
    "feed", "area", "migun_time", "alert_type",
    "status_code", "duration_ms", "endpoint",
)

_NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")

_current_request: ContextVar[Optional[Dict[str, Any]]] = ContextVar("migun_request", default=None)


def bind_request(**fields: Any) -> Token:
    """Attach request fields to log lines until ``unbind_request``."""
    return _current_request.set(fields)


def unbind_request(token: Token) -> None:
    _current_request.reset(token)


def current_request() -> Dict[str, Any]:
    return _current_request.get() or {}


def _extras(record: logging.LogRecord) -> Dict[str, Any]:
    return {k: getattr(record, k) for k in LOG_EXTRAS if hasattr(record, k)}


class JSONFormatter(logging.Formatter):
    """One JSON object per record; timestamps are the record's own, in UTC."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        entry.update(_extras(record))
        request = current_request()
        if request:
            entry["request"] = request
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


class PrettyFormatter(logging.Formatter):
    """``21:05:33.412 INFO  [req] <live> logger: message``"""

    LEVEL_COLOURS = {
        "DEBUG": "\033[2m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[1;31m",
    }
    RESET = "\033[0m"

    def __init__(self, colour: bool = True):
        super().__init__()
        self.colour = colour

    def format(self, record: logging.LogRecord) -> str:
        stamp = self.formatTime(record, "%H:%M:%S") + f".{int(record.msecs):03d}"
        level = f"{record.levelname:<5}"
        if self.colour:
            level = f"{self.LEVEL_COLOURS.get(record.levelname, '')}{level}{self.RESET}"

        tags = []
        request_id = current_request().get("request_id")
        if request_id:
            tags.append(f"[{request_id[:8]}]")
        feed = getattr(record, "feed", None)
        if feed:
            tags.append(f"<{feed}>")

        line = " ".join([stamp, level, *tags, f"{record.name}: {record.getMessage()}"])
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(level: Optional[str] = None, *, json_output: Optional[bool] = None) -> None:
    """Install a single stdout handler on the root logger.

    ``json_output`` defaults to the environment: JSON in production,
    coloured lines otherwise.
    """
    if json_output is None:
        json_output = settings.is_production

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if json_output else PrettyFormatter(colour=sys.stdout.isatty()))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO))

    # Both feeds are fetched every two seconds.
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)

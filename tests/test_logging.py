"""
test_logging.py — Tests for log formatting and the request middleware.

Covers:
    • JSON lines carry domain extras and the bound request
    • Pretty lines carry the request and feed tags
    • Access-log levels (polled paths quiet, errors loud)
    • Correlation headers

Run with:
    pytest tests/test_logging.py -v
"""

from __future__ import annotations

import json
import logging

from fastapi import FastAPI
from fastapi.testclient import TestClient

from migun.app.core.logging_config import (
    JSONFormatter,
    PrettyFormatter,
    bind_request,
    current_request,
    unbind_request,
)
from migun.app.core.middleware import RequestLoggingMiddleware, access_log_level

from conftest import HAIFA


def _record(msg="New alert for: %s", *args, **extra) -> logging.LogRecord:
    record = logging.LogRecord("migun.app.alerts.store", logging.INFO, __file__, 1, msg, args or (HAIFA,), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestFormatters:

    def test_json_line_has_extras(self):
        line = JSONFormatter().format(_record(area=HAIFA, feed="live", migun_time=60))
        entry = json.loads(line)
        assert entry["msg"] == f"New alert for: {HAIFA}"
        assert entry["area"] == HAIFA
        assert entry["feed"] == "live"
        assert entry["migun_time"] == 60
        assert "request" not in entry

    def test_json_line_has_bound_request(self):
        token = bind_request(request_id="abc123", endpoint="/api/test-alert")
        try:
            entry = json.loads(JSONFormatter().format(_record()))
        finally:
            unbind_request(token)
        assert entry["request"] == {"request_id": "abc123", "endpoint": "/api/test-alert"}
        assert current_request() == {}

    def test_pretty_line_tags(self):
        token = bind_request(request_id="0123456789abcdef")
        try:
            line = PrettyFormatter(colour=False).format(_record(feed="history"))
        finally:
            unbind_request(token)
        assert "[01234567] <history> migun.app.alerts.store: New alert for" in line
        assert "\033[" not in line


class TestAccessLog:

    def test_levels(self):
        assert access_log_level("/api/alerts", 200) == logging.DEBUG
        assert access_log_level("/health/live", 200) == logging.DEBUG
        assert access_log_level("/api/areas", 200) == logging.INFO
        assert access_log_level("/api/alerts", 503) == logging.WARNING
        assert access_log_level("/docs", 200) == 0

    def test_headers_and_single_line(self, caplog):
        app = FastAPI()
        app.add_middleware(RequestLoggingMiddleware)

        @app.get("/api/areas")
        async def areas():
            return []

        client = TestClient(app)
        with caplog.at_level(logging.DEBUG, logger="migun.app.core.middleware"):
            resp = client.get("/api/areas", headers={"X-Request-ID": "req-42"})
        assert resp.headers["X-Request-ID"] == "req-42"
        assert resp.headers["X-Process-Time"].endswith("ms")
        lines = [r for r in caplog.records if r.name == "migun.app.core.middleware"]
        assert len(lines) == 1
        assert lines[0].levelno == logging.INFO
        assert lines[0].status_code == 200

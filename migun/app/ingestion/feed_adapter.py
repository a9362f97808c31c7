"""
feed_adapter.py — Upstream alert feed ingestion.

Fetches the two upstream feeds, validates each payload against its known
contract, and normalizes it into a ``FeedScan`` the alert store can apply.

Upstream contracts
==================

Live feed (current alert, a single object; empty body = no alert):

    {"id": "1334...", "cat": "1", "title": "ירי רקטות וטילים",
     "desc": "היכנסו למרחב המוגן", "data": ["שדרות", "נתיבות"]}

History feed (recent alerts, one entry per area):

    [{"alertDate": "2024-10-01 21:05:33", "category": 1,
      "title": "ירי רקטות וטילים", "data": "שדרות"}, ...]

Error Handling Strategy
=======================
    Network errors, timeouts (5 s hard box), non-2xx statuses
        → logged, fetch returns None ("no update this cycle")
    Body that is not JSON, or JSON matching neither contract
        → logged, fetch returns None
    No retries and no backoff: the poller simply tries again next tick.

Normalization
=============
    1. Map the category code through the feed's own table
    2. Drop drill categories and areas containing the test marker
    3. Early-warning categories become an EarlyWarningNotice, not records
    4. History only: drop entries older than HISTORY_MAX_AGE_SECONDS
       (and entries whose alertDate cannot be parsed)
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union
from zoneinfo import ZoneInfo

import httpx
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from migun.app.alerts.models import (
    AlertType,
    EarlyWarningNotice,
    FeedScan,
    FeedSource,
    ScanEntry,
)
from migun.app.core.clock import Clock, now_ms
from migun.app.core.config import settings
from migun.app.core.errors import FeedFormatError
from migun.app.ingestion.categories import history_category_type, live_category_type

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Feed contracts (tagged variants)
# ---------------------------------------------------------------------------

class LiveFeedMessage(BaseModel):
    """The live feed's single current-alert object."""
    model_config = ConfigDict(extra="ignore")

    kind: Literal["live"] = "live"
    id: Optional[Union[str, int]] = None
    cat: int
    title: Optional[str] = None
    desc: Optional[str] = None
    data: List[Any]  # non-string entries are skipped during normalization

    @classmethod
    def empty(cls) -> "LiveFeedMessage":
        """What an empty response body means: nothing is active."""
        return cls(cat=0, data=[])


class HistoryFeedEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    category: int
    alertDate: str
    title: Optional[str] = None
    data: str


class HistoryFeedMessage(BaseModel):
    """The history feed's array, wrapped so it carries a tag."""
    kind: Literal["history"] = "history"
    entries: List[HistoryFeedEntry] = Field(default_factory=list)


FeedMessage = Union[LiveFeedMessage, HistoryFeedMessage]

_history_entries = TypeAdapter(List[HistoryFeedEntry])


def parse_live_feed(raw: Any) -> LiveFeedMessage:
    """Validate a decoded live-feed payload; raise FeedFormatError otherwise."""
    if raw is None:
        return LiveFeedMessage.empty()
    if not isinstance(raw, dict):
        raise FeedFormatError("live", f"expected object, got {type(raw).__name__}")
    if "kind" in raw:
        raw = {k: v for k, v in raw.items() if k != "kind"}
    try:
        return LiveFeedMessage.model_validate(raw)
    except PydanticValidationError as e:
        raise FeedFormatError("live", f"{e.error_count()} validation error(s)", errors=e.errors(include_url=False)) from e


def parse_history_feed(raw: Any) -> HistoryFeedMessage:
    """Validate a decoded history-feed payload; raise FeedFormatError otherwise."""
    if raw is None:
        return HistoryFeedMessage()
    if not isinstance(raw, list):
        raise FeedFormatError("history", f"expected array, got {type(raw).__name__}")
    try:
        return HistoryFeedMessage(entries=_history_entries.validate_python(raw))
    except PydanticValidationError as e:
        raise FeedFormatError("history", f"{e.error_count()} validation error(s)", errors=e.errors(include_url=False)) from e


def parse_feed(raw: Any) -> FeedMessage:
    """Dispatch on payload shape: object → live, array → history."""
    if isinstance(raw, dict):
        return parse_live_feed(raw)
    if isinstance(raw, list):
        return parse_history_feed(raw)
    raise FeedFormatError("unknown", f"unsupported payload type {type(raw).__name__}")


def decode_body(content: bytes) -> Any:
    """
    Decode an upstream body to JSON.

    The upstream serves UTF-8 (sometimes with a BOM, sometimes UTF-16) and
    answers an empty or whitespace body when nothing is active; that case
    decodes to None.
    """
    if content.startswith((b"\xff\xfe", b"\xfe\xff")):
        text = content.decode("utf-16")
    else:
        text = content.decode("utf-8-sig")
    text = text.lstrip("\ufeff").strip()
    if not text:
        return None
    return json.loads(text)


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def _is_test_area(area: str, test_marker: str) -> bool:
    return bool(test_marker) and test_marker in area


def _clean_areas(areas: List[Any], test_marker: str) -> List[str]:
    """Strip, drop non-strings, blanks and test-marker areas, de-duplicate in order."""
    seen = set()
    result = []
    for area in areas:
        if not isinstance(area, str):
            logger.debug("Skipping non-string area entry %r", area)
            continue
        area = area.strip()
        if not area or area in seen:
            continue
        if _is_test_area(area, test_marker):
            logger.debug("Discarding test area %s", area)
            continue
        seen.add(area)
        result.append(area)
    return result


def normalize_live(
    message: LiveFeedMessage,
    *,
    now: int,
    test_marker: str = settings.FEED_TEST_MARKER,
) -> FeedScan:
    """Turn a live-feed message into a scan (or a notice)."""
    scan = FeedScan(source=FeedSource.LIVE)
    alert_type = live_category_type(message.cat)
    if not message.data and alert_type != AlertType.EARLY_WARNING:
        return scan

    if alert_type == AlertType.DRILL:
        logger.debug("Ignoring live drill category %d", message.cat)
        return scan

    areas = _clean_areas(message.data, test_marker)
    instructions = message.desc or message.title

    if alert_type == AlertType.EARLY_WARNING:
        scan.notice = EarlyWarningNotice(
            instructions=instructions or "",
            timestamp=now,
            areas=areas,
        )
        return scan

    scan.entries = [ScanEntry(area, alert_type, instructions) for area in areas]
    return scan


def parse_alert_date(value: str, tz: ZoneInfo) -> Optional[int]:
    """Parse an upstream ``alertDate`` into epoch ms; None when unparseable."""
    try:
        dt = datetime.fromisoformat(value.strip())
    except (ValueError, AttributeError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz)
    return int(dt.timestamp() * 1000)


def normalize_history(
    message: HistoryFeedMessage,
    *,
    now: int,
    test_marker: str = settings.FEED_TEST_MARKER,
    max_age_seconds: int = settings.HISTORY_MAX_AGE_SECONDS,
    tz: Optional[ZoneInfo] = None,
) -> FeedScan:
    """
    Turn history entries into a scan.

    Stale entries are dropped before anything else so that backfilled
    history never re-creates an alert that has already run its course.
    When several early-warning entries survive, the newest timestamp wins
    and its areas are collected in feed order.
    """
    tz = tz or ZoneInfo(settings.HISTORY_TIMEZONE)
    scan = FeedScan(source=FeedSource.HISTORY)
    seen_areas = set()
    notice_ts: Optional[int] = None
    notice_title = ""
    notice_areas: List[str] = []
    stale = 0

    for entry in message.entries:
        ts = parse_alert_date(entry.alertDate, tz)
        if ts is None:
            logger.debug("Unparseable alertDate %r", entry.alertDate)
            continue
        if now - ts > max_age_seconds * 1000:
            stale += 1
            continue

        area = entry.data.strip()
        if not area or _is_test_area(area, test_marker):
            continue

        alert_type = history_category_type(entry.category)
        if alert_type == AlertType.DRILL:
            continue

        if alert_type == AlertType.EARLY_WARNING:
            if notice_ts is None or ts > notice_ts:
                notice_ts, notice_title, notice_areas = ts, entry.title or "", [area]
            elif ts == notice_ts and area not in notice_areas:
                notice_areas.append(area)
            continue

        if area in seen_areas:
            continue
        seen_areas.add(area)
        scan.entries.append(ScanEntry(area, alert_type, entry.title))

    if notice_ts is not None:
        scan.notice = EarlyWarningNotice(
            instructions=notice_title,
            timestamp=notice_ts,
            areas=notice_areas,
        )

    if stale:
        logger.debug("Dropped %d stale history entries", stale, extra={"feed": "history"})

    return scan


# ---------------------------------------------------------------------------
# HTTP layer
# ---------------------------------------------------------------------------

class FeedAdapter:
    """
    Fetches and normalizes both upstream feeds.

    Usage:
        adapter = FeedAdapter()
        scan = await adapter.scan_live()      # FeedScan or None
        scan = await adapter.scan_history()   # FeedScan or None
        await adapter.close()
    """

    def __init__(
        self,
        *,
        client: Optional[httpx.AsyncClient] = None,
        live_url: str = settings.LIVE_FEED_URL,
        history_url: str = settings.HISTORY_FEED_URL,
        timeout_seconds: float = settings.FEED_TIMEOUT_SECONDS,
        test_marker: str = settings.FEED_TEST_MARKER,
        history_max_age_seconds: int = settings.HISTORY_MAX_AGE_SECONDS,
        history_timezone: str = settings.HISTORY_TIMEZONE,
        clock: Clock = now_ms,
    ):
        self.live_url = live_url
        self.history_url = history_url
        self.timeout_seconds = timeout_seconds
        self.test_marker = test_marker
        self.history_max_age_seconds = history_max_age_seconds
        self.history_tz = ZoneInfo(history_timezone)
        self._clock = clock
        self._http_client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=self.timeout_seconds,
                headers=self._headers(),
            )
            self._owns_client = True
        return self._http_client

    @staticmethod
    def _headers() -> Dict[str, str]:
        return {
            "Referer": settings.FEED_REFERER,
            "X-Requested-With": "XMLHttpRequest",
            "Accept": "application/json",
            "Accept-Language": "he-IL,he;q=0.9,en-US;q=0.8,en;q=0.7",
        }

    async def close(self) -> None:
        """Close HTTP client (only if this adapter created it)."""
        if self._owns_client and self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def _fetch_json(self, url: str, feed: FeedSource) -> Any:
        """
        GET ``url`` under a hard time box and decode the body.

        Raises nothing: any failure is logged and reported as the sentinel
        ``_FAILED``.
        """
        client = await self._get_client()
        try:
            response = await asyncio.wait_for(
                client.get(url, headers=self._headers(), timeout=self.timeout_seconds),
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.warning(
                "%s feed timed out after %.1fs", feed.value, self.timeout_seconds,
                extra={"feed": feed.value},
            )
            return _FAILED
        except httpx.HTTPStatusError as e:
            logger.error(
                "%s feed returned status %d", feed.value, e.response.status_code,
                extra={"feed": feed.value, "status_code": e.response.status_code},
            )
            return _FAILED
        except httpx.HTTPError as e:
            logger.error("Error fetching %s feed: %s", feed.value, e, extra={"feed": feed.value})
            return _FAILED

        try:
            return decode_body(response.content)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.error("Failed to parse %s feed response: %s", feed.value, e, extra={"feed": feed.value})
            return _FAILED

    async def fetch_live(self) -> Optional[LiveFeedMessage]:
        """Fetch the live feed; None on any failure."""
        raw = await self._fetch_json(self.live_url, FeedSource.LIVE)
        if raw is _FAILED:
            return None
        try:
            return parse_live_feed(raw)
        except FeedFormatError as e:
            logger.error("%s", e.message, extra={"feed": "live"})
            return None

    async def fetch_history(self) -> Optional[HistoryFeedMessage]:
        """Fetch the history feed; None on any failure."""
        raw = await self._fetch_json(self.history_url, FeedSource.HISTORY)
        if raw is _FAILED:
            return None
        try:
            return parse_history_feed(raw)
        except FeedFormatError as e:
            logger.error("%s", e.message, extra={"feed": "history"})
            return None

    async def scan_live(self) -> Optional[FeedScan]:
        message = await self.fetch_live()
        if message is None:
            return None
        return normalize_live(message, now=self._clock(), test_marker=self.test_marker)

    async def scan_history(self) -> Optional[FeedScan]:
        message = await self.fetch_history()
        if message is None:
            return None
        return normalize_history(
            message,
            now=self._clock(),
            test_marker=self.test_marker,
            max_age_seconds=self.history_max_age_seconds,
            tz=self.history_tz,
        )


_FAILED = object()

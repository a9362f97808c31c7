"""
sync_engine.py — Keeps a local, clock-corrected copy of the server snapshot.

═══════════════════════════════════════════════════════════════════════════
CLOCK OFFSET
═══════════════════════════════════════════════════════════════════════════

Every successful poll records

    offset = server_time − local_now()

and every countdown is evaluated on the server's timeline:

    remaining = max(0, migun_time − (local_now() + offset − started_at) / 1000)

Without the offset a phone whose clock runs 20 s fast would show 20 s less
time than it actually has.

═══════════════════════════════════════════════════════════════════════════
FAILURE MODEL
═══════════════════════════════════════════════════════════════════════════

A failed poll (network, timeout, non-2xx, malformed body) keeps the last
alerts, notice and offset and only sets ``state.error``. The next poll
happens after the same fixed interval. Each success swaps in a whole new
immutable ``SyncState``, so readers never see half an update.

═══════════════════════════════════════════════════════════════════════════
ENDED EDGE
═══════════════════════════════════════════════════════════════════════════

The server never says "alert over"; the record just disappears. For each
tracked selection ``observe()`` watches for active → absent and raises an
``alert_ended`` flag that holds for ENDED_DISPLAY_SECONDS, or until a new
alert for the same selection starts.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Tuple

import httpx

from migun.app.alerts.models import AlertRecord, EarlyWarningNotice
from migun.app.api.schemas import AlertsSnapshotResponse
from migun.app.core.clock import Clock, now_ms
from migun.client.config import client_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncState:
    """One consistent view of the last known server snapshot."""
    alerts: Tuple[AlertRecord, ...] = ()
    notice: Optional[EarlyWarningNotice] = None
    offset_ms: int = 0
    server_time: Optional[int] = None
    error: Optional[str] = None
    loaded: bool = False

    def alert_for(self, area: Optional[str]) -> Optional[AlertRecord]:
        if not area:
            return None
        for record in self.alerts:
            if record.area == area:
                return record
        return None


@dataclass
class _EndedTracker:
    had_alert: bool = False
    ended_at: Optional[int] = None


class AlertSyncEngine:
    """
    Polls ``GET /api/alerts`` and answers countdown questions.

    Usage:
        engine = AlertSyncEngine("http://localhost:3001")
        engine.start()                      # inside a running event loop
        record = engine.active_alert("תל אביב - מרכז העיר")
        if record:
            print(engine.remaining_time(record))
        await engine.stop()
    """

    def __init__(
        self,
        base_url: str = client_settings.BASE_URL,
        *,
        client: Optional[httpx.AsyncClient] = None,
        poll_interval_ms: int = client_settings.POLL_INTERVAL_MS,
        clock: Clock = now_ms,
        timeout_seconds: float = client_settings.TIMEOUT_SECONDS,
        ended_display_seconds: int = client_settings.ENDED_DISPLAY_SECONDS,
    ):
        self.base_url = base_url.rstrip("/")
        self.poll_interval_ms = poll_interval_ms
        self.timeout_seconds = timeout_seconds
        self.ended_display_seconds = ended_display_seconds
        self._clock = clock
        self._http_client = client
        self._owns_client = client is None
        self._state = SyncState()
        self._trackers: Dict[str, _EndedTracker] = {}
        self._task: Optional[asyncio.Task] = None

    # ── State ──

    @property
    def state(self) -> SyncState:
        return self._state

    def local_now(self) -> int:
        return self._clock()

    def server_now(self) -> int:
        return self._clock() + self._state.offset_ms

    def apply_snapshot(self, payload: object) -> SyncState:
        """Validate a decoded /api/alerts body and swap it in atomically."""
        parsed = AlertsSnapshotResponse.model_validate(payload)
        self._state = SyncState(
            alerts=tuple(a.to_record() for a in parsed.alerts),
            notice=parsed.newsFlash.to_notice() if parsed.newsFlash else None,
            offset_ms=parsed.server_time - self._clock(),
            server_time=parsed.server_time,
            error=None,
            loaded=True,
        )
        return self._state

    # ── HTTP ──

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self.timeout_seconds)
            self._owns_client = True
        return self._http_client

    async def poll_once(self) -> bool:
        """One fetch; True on success. Never raises for fetch failures."""
        client = await self._get_client()
        try:
            response = await asyncio.wait_for(
                client.get(f"{self.base_url}/api/alerts"),
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
            self.apply_snapshot(response.json())
        except (asyncio.TimeoutError, httpx.TimeoutException):
            self._fail(f"Timed out after {self.timeout_seconds:.1f}s")
            return False
        except httpx.HTTPStatusError as e:
            self._fail(f"Server returned {e.response.status_code}")
            return False
        except httpx.HTTPError as e:
            self._fail(f"Network error: {e}")
            return False
        except ValueError as e:
            # json decode errors and pydantic validation errors
            self._fail(f"Malformed snapshot: {e}")
            return False
        return True

    def _fail(self, message: str) -> None:
        logger.warning("Alert poll failed: %s", message)
        self._state = replace(self._state, error=message)

    # ── Timer ──

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self) -> None:
        interval = self.poll_interval_ms / 1000
        while True:
            started = time.monotonic()
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Alert sync cycle failed")
            await asyncio.sleep(max(0.0, interval - (time.monotonic() - started)))

    def start(self) -> None:
        """Start polling; a second call while running is a no-op."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name="migun-alert-sync")

    async def stop(self) -> None:
        """Cancel the poll timer and close an owned HTTP client."""
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        if self._owns_client and self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    # ── Countdown ──

    def remaining_time(self, record: AlertRecord) -> float:
        """Seconds left to reach shelter, on the server's timeline."""
        elapsed = (self.server_now() - record.started_at) / 1000
        return max(0.0, record.migun_time - elapsed)

    def active_alert(self, area: Optional[str]) -> Optional[AlertRecord]:
        return self._state.alert_for(area)

    # ── Ended edge ──

    def observe(self, selection: Optional[str]) -> bool:
        """
        Advance the ended-edge detector for ``selection``.

        Returns the current ``alert_ended`` flag.
        """
        if not selection:
            return False
        now = self._clock()
        tracker = self._trackers.setdefault(selection, _EndedTracker())
        active = self.active_alert(selection) is not None

        if active:
            tracker.ended_at = None
        elif tracker.had_alert:
            tracker.ended_at = now
            logger.info("Alert ended for selection: %s", selection)
        tracker.had_alert = active

        if tracker.ended_at is not None and now - tracker.ended_at >= self.ended_display_seconds * 1000:
            tracker.ended_at = None
        return tracker.ended_at is not None

    def alert_ended(self, selection: Optional[str]) -> bool:
        """Current flag without advancing the detector."""
        tracker = self._trackers.get(selection or "")
        if tracker is None or tracker.ended_at is None:
            return False
        return self._clock() - tracker.ended_at < self.ended_display_seconds * 1000

    def forget(self, selection: str) -> None:
        self._trackers.pop(selection, None)

    def other_active(self, selections: Iterable[Optional[str]], current: Optional[str]) -> List[str]:
        """Tracked selections other than ``current`` that have an alert right now."""
        out: List[str] = []
        for sel in selections:
            if sel and sel != current and sel not in out and self.active_alert(sel):
                out.append(sel)
        return out

"""
Feed poller — two fixed-interval background timers feeding the AlertStore.

═══════════════════════════════════════════════════════════════════════════
POLLING MODEL
═══════════════════════════════════════════════════════════════════════════

    live task      every LIVE_POLL_INTERVAL_SECONDS
                   scan_live() → store.ingest(scan) | store.sweep()
    history task   every HISTORY_POLL_INTERVAL_SECONDS
                   scan_history() → store.ingest(scan)

A failed fetch is "no update this cycle": nothing is ingested and the
feed's last reported area set stays as it was. The live task still sweeps
so records keep ageing out during an outage. There is no backoff; the
next attempt always happens after the same fixed interval.

Both tasks run on the application's event loop. ``start()`` is
idempotent and ``stop()`` cancels both tasks and closes the adapter.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from migun.app.alerts.models import FeedScan, FeedSource
from migun.app.alerts.store import AlertStore
from migun.app.core.config import settings
from migun.app.ingestion.feed_adapter import FeedAdapter

logger = logging.getLogger(__name__)


@dataclass
class FeedStatus:
    """Per-feed polling bookkeeping, surfaced by the health probe."""
    feed: FeedSource
    polls: int = 0
    failures: int = 0
    consecutive_failures: int = 0
    last_success_at: Optional[int] = None
    last_failure_at: Optional[int] = None
    last_area_count: int = 0

    def record_success(self, now: int, area_count: int) -> None:
        self.polls += 1
        self.consecutive_failures = 0
        self.last_success_at = now
        self.last_area_count = area_count

    def record_failure(self, now: int) -> None:
        self.polls += 1
        self.failures += 1
        self.consecutive_failures += 1
        self.last_failure_at = now

    def to_dict(self) -> Dict[str, Any]:
        return {
            "feed": self.feed.value,
            "polls": self.polls,
            "failures": self.failures,
            "consecutive_failures": self.consecutive_failures,
            "last_success_at": self.last_success_at,
            "last_failure_at": self.last_failure_at,
            "last_area_count": self.last_area_count,
        }


class FeedPoller:
    """
    Owns the live and history polling tasks.

    Usage:
        poller = FeedPoller(store)
        poller.start()          # inside a running event loop
        ...
        await poller.stop()
    """

    def __init__(
        self,
        store: AlertStore,
        adapter: Optional[FeedAdapter] = None,
        *,
        live_interval_seconds: float = settings.LIVE_POLL_INTERVAL_SECONDS,
        history_interval_seconds: float = settings.HISTORY_POLL_INTERVAL_SECONDS,
    ):
        self.store = store
        self.adapter = adapter or FeedAdapter()
        self.live_interval_seconds = live_interval_seconds
        self.history_interval_seconds = history_interval_seconds
        self.status: Dict[FeedSource, FeedStatus] = {s: FeedStatus(s) for s in FeedSource}
        self._tasks: Dict[FeedSource, asyncio.Task] = {}

    @property
    def is_running(self) -> bool:
        return any(not t.done() for t in self._tasks.values())

    # ── Single cycles (also used directly by tests) ──

    async def poll_live_once(self) -> Optional[FeedScan]:
        scan = await self.adapter.scan_live()
        self._record(FeedSource.LIVE, scan)
        if scan is not None:
            self.store.ingest(scan)
        else:
            self.store.sweep()
        return scan

    async def poll_history_once(self) -> Optional[FeedScan]:
        scan = await self.adapter.scan_history()
        self._record(FeedSource.HISTORY, scan)
        if scan is not None:
            self.store.ingest(scan)
        return scan

    def _record(self, feed: FeedSource, scan: Optional[FeedScan]) -> None:
        now = self.store.now()
        if scan is None:
            self.status[feed].record_failure(now)
        else:
            self.status[feed].record_success(now, len(scan.entries))

    # ── Timers ──

    async def _run(self, feed: FeedSource, interval: float) -> None:
        poll = self.poll_live_once if feed == FeedSource.LIVE else self.poll_history_once
        logger.info("%s feed polling every %.1fs", feed.value, interval, extra={"feed": feed.value})
        while True:
            started = time.monotonic()
            try:
                await poll()
            except asyncio.CancelledError:
                raise
            except Exception:
                # A bug in one cycle must not kill the timer.
                logger.exception("%s poll cycle failed", feed.value, extra={"feed": feed.value})
            elapsed = time.monotonic() - started
            await asyncio.sleep(max(0.0, interval - elapsed))

    def start(self) -> None:
        """Start both timers; a second call while running is a no-op."""
        if self.is_running:
            logger.debug("Feed poller already running")
            return
        self._tasks = {
            FeedSource.LIVE: asyncio.create_task(
                self._run(FeedSource.LIVE, self.live_interval_seconds),
                name="migun-live-poller",
            ),
            FeedSource.HISTORY: asyncio.create_task(
                self._run(FeedSource.HISTORY, self.history_interval_seconds),
                name="migun-history-poller",
            ),
        }
        logger.info("Feed poller started")

    async def stop(self) -> None:
        """Cancel both timers and release the HTTP client."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks = {}
        await self.adapter.close()
        logger.info("Feed poller stopped")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "running": self.is_running,
            "feeds": [s.to_dict() for s in self.status.values()],
        }

"""
store.py — Authoritative per-area alert table and early-warning notice.

═══════════════════════════════════════════════════════════════════════════
EXPIRY STATE MACHINE
═══════════════════════════════════════════════════════════════════════════

    Event                                   Effect
    ─────────────────────────────────────   ─────────────────────────────────
    area reported, no record                create record, started_at = now
    area reported, record exists            nothing (started_at kept)
    area absent, elapsed ≤ migun + grace    record kept (feed gap hysteresis)
    area absent, elapsed > migun + grace    record deleted

"Reported" means present in the most recent successful scan of either
feed. A failed fetch leaves that feed's last reported set untouched.

The upstream regularly omits an area for a scan or two while the danger
is ongoing; deleting on first absence would flash an "all clear".

═══════════════════════════════════════════════════════════════════════════
NOTICE OVERWRITE RULES
═══════════════════════════════════════════════════════════════════════════

    Source     Overwrites current notice when
    ───────    ───────────────────────────────────────────────
    live       always
    history    its timestamp is strictly newer than the current one

The notice clears once now − timestamp > NOTICE_TTL_SECONDS.

═══════════════════════════════════════════════════════════════════════════
SYNTHETIC INJECTION
═══════════════════════════════════════════════════════════════════════════

``upsert(area, migun_time)`` / ``clear()`` are the developer injection
interface. Injected records live in their own table, follow the same
expiry rule (they are never "reported", so they simply age out) and are
merged over real records at snapshot time.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Iterable, List, Optional, Set

from migun.app.alerts.models import (
    AlertRecord,
    AlertType,
    EarlyWarningNotice,
    FeedScan,
    FeedSource,
    Snapshot,
)
from migun.app.areas.catalog import AreaCatalog
from migun.app.core.clock import Clock, now_ms
from migun.app.core.config import settings

logger = logging.getLogger(__name__)


class AlertStore:
    """
    In-memory alert table with an injectable clock.

    All public methods take the store lock, so a snapshot never observes a
    half-applied scan even when called from another thread.

    Usage:
        store = AlertStore(catalog)
        store.ingest(scan)                  # from the feed poller
        snap = store.snapshot()             # from the API
    """

    def __init__(
        self,
        catalog: Optional[AreaCatalog] = None,
        *,
        clock: Clock = now_ms,
        grace_seconds: int = settings.GRACE_SECONDS,
        notice_ttl_seconds: int = settings.NOTICE_TTL_SECONDS,
    ):
        self.catalog = catalog or AreaCatalog(default_migun_time=settings.DEFAULT_MIGUN_TIME)
        self.grace_seconds = grace_seconds
        self.notice_ttl_seconds = notice_ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._records: Dict[str, AlertRecord] = {}
        self._injected: Dict[str, AlertRecord] = {}
        self._reported: Dict[FeedSource, Set[str]] = {s: set() for s in FeedSource}
        self._notice: Optional[EarlyWarningNotice] = None

    def now(self) -> int:
        return self._clock()

    # ── Feed writes ──

    def ingest(self, scan: FeedScan) -> List[AlertRecord]:
        """
        Apply one successful feed scan.

        Returns the records created by this scan (areas that went
        NONE → ACTIVE).
        """
        with self._lock:
            now = self._clock()
            created: List[AlertRecord] = []

            for entry in scan.entries:
                if entry.area in self._records:
                    continue
                record = AlertRecord(
                    area=entry.area,
                    migun_time=self.catalog.migun_time_for(entry.area),
                    started_at=now,
                    type=entry.type,
                    instructions=entry.instructions,
                )
                self._records[entry.area] = record
                created.append(record)
                logger.info(
                    "New alert for: %s (%ds, %s)",
                    record.area, record.migun_time, record.type.value,
                    extra={
                        "area": record.area,
                        "migun_time": record.migun_time,
                        "alert_type": record.type.value,
                        "feed": scan.source.value,
                    },
                )

            self._reported[scan.source] = set(scan.areas)

            if scan.notice is not None:
                self._apply_notice(scan.notice, scan.source)

            self._sweep(now)
            return created

    def _apply_notice(self, notice: EarlyWarningNotice, source: FeedSource) -> None:
        current = self._notice
        if source == FeedSource.HISTORY and current is not None:
            if notice.timestamp <= current.timestamp:
                logger.debug(
                    "Ignoring history notice %d, not newer than current %d",
                    notice.timestamp, current.timestamp,
                    extra={"feed": source.value},
                )
                return
        if current is None or current.timestamp != notice.timestamp or current.areas != notice.areas:
            logger.info(
                "Early warning notice from %s feed (%d areas)",
                source.value, len(notice.areas),
                extra={"feed": source.value},
            )
        self._notice = notice

    # ── Expiry ──

    def sweep(self) -> int:
        """Drop expired records and a stale notice. Returns records removed."""
        with self._lock:
            return self._sweep(self._clock())

    def _sweep(self, now: int) -> int:
        present = set().union(*self._reported.values())
        removed = 0

        for area, record in list(self._records.items()):
            if area in present:
                continue
            if record.is_expired(now, self.grace_seconds):
                del self._records[area]
                removed += 1
                logger.info("Alert ended for: %s", area, extra={"area": area})

        for area, record in list(self._injected.items()):
            if record.is_expired(now, self.grace_seconds):
                del self._injected[area]
                removed += 1
                logger.debug("Injected alert expired for: %s", area, extra={"area": area})

        if self._notice is not None and self._notice.is_expired(now, self.notice_ttl_seconds):
            logger.info("Early warning notice expired")
            self._notice = None

        return removed

    # ── Synthetic injector interface ──

    def upsert(
        self,
        area: str,
        migun_time: Optional[int] = None,
        *,
        alert_type: AlertType = AlertType.MISSILES,
        instructions: Optional[str] = None,
    ) -> AlertRecord:
        """Inject (or restart) a synthetic alert for ``area``."""
        if not area or not area.strip():
            raise ValueError("Area name required")
        area = area.strip()
        with self._lock:
            record = AlertRecord(
                area=area,
                migun_time=int(migun_time) if migun_time else self.catalog.migun_time_for(area),
                started_at=self._clock(),
                type=alert_type,
                instructions=instructions,
            )
            self._injected[area] = record
        logger.info(
            "Test alert created for: %s (%ds)", area, record.migun_time,
            extra={"area": area, "migun_time": record.migun_time},
        )
        return record

    def upsert_many(self, areas: Iterable[str], migun_time: Optional[int] = None) -> List[AlertRecord]:
        """
        Inject several areas at once.

        A catalogued area keeps its own migun_time; ``migun_time`` only
        applies to areas the catalog does not know.
        """
        return [self.upsert(a, None if a in self.catalog else migun_time) for a in areas]

    def clear(self) -> int:
        """Remove all injected records and the current notice."""
        with self._lock:
            count = len(self._injected)
            self._injected.clear()
            self._notice = None
        logger.info("Test alerts cleared (%d)", count)
        return count

    # ── Reads ──

    def snapshot(self) -> Snapshot:
        """Fresh, consistent view; never cached between calls."""
        with self._lock:
            now = self._clock()
            merged = {**self._records, **self._injected}
            alerts = tuple(
                r for r in merged.values()
                if not r.is_expired(now, self.grace_seconds)
            )
            notice = self._notice
            if notice is not None and notice.is_expired(now, self.notice_ttl_seconds):
                notice = None
            return Snapshot(alerts=alerts, notice=notice, server_time=now)

    def get(self, area: str) -> Optional[AlertRecord]:
        with self._lock:
            return self._injected.get(area) or self._records.get(area)

    @property
    def notice(self) -> Optional[EarlyWarningNotice]:
        with self._lock:
            return self._notice

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "records": len(self._records),
                "injected": len(self._injected),
                "reported_live": len(self._reported[FeedSource.LIVE]),
                "reported_history": len(self._reported[FeedSource.HISTORY]),
                "notice": int(self._notice is not None),
            }

    # ── Lifecycle ──

    def reset(self) -> None:
        """Discard all state (equivalent to a process restart)."""
        with self._lock:
            self._records.clear()
            self._injected.clear()
            for source in FeedSource:
                self._reported[source] = set()
            self._notice = None

    def close(self) -> None:
        self.reset()

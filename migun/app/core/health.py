"""
Health check aggregation — deep health probe for all subsystems.

Checks:
    • Area catalog loaded
    • Live feed freshness
    • History feed freshness
    • Alert store occupancy

Returns a structured health report suitable for:
    - Kubernetes liveness/readiness probes
    - Load balancer health checks
    - Monitoring dashboards
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from migun.app.alerts.models import FeedSource
from migun.app.alerts.store import AlertStore
from migun.app.areas.catalog import AreaCatalog
from migun.app.core.config import settings
from migun.app.ingestion.poller import FeedPoller

# A feed silent for this many poll intervals is reported as degraded.
STALE_FEED_INTERVALS = 15


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"  # serving, possibly stale data
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    name: str
    status: HealthStatus = HealthStatus.HEALTHY
    latency_ms: float = 0.0
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            d["message"] = self.message
        if self.details:
            d["details"] = self.details
        return d


@dataclass
class HealthReport:
    status: HealthStatus = HealthStatus.HEALTHY
    version: str = settings.APP_VERSION
    environment: str = settings.ENVIRONMENT
    timestamp: str = ""
    uptime_seconds: float = 0.0
    components: List[ComponentHealth] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "version": self.version,
            "environment": self.environment,
            "timestamp": self.timestamp or datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": round(self.uptime_seconds, 1),
            "components": [c.to_dict() for c in self.components],
        }


# Track application start time
_start_time = time.monotonic()


def check_catalog(catalog: Optional[AreaCatalog]) -> ComponentHealth:
    """An empty catalog still works (every area gets the default budget)."""
    comp = ComponentHealth(name="area_catalog")
    start = time.monotonic()
    if catalog is None:
        comp.status = HealthStatus.UNHEALTHY
        comp.message = "Catalog not initialised"
    elif len(catalog) == 0:
        comp.status = HealthStatus.DEGRADED
        comp.message = f"No areas loaded, default {catalog.default_migun_time}s applies"
    else:
        comp.message = f"{len(catalog)} areas"
    comp.details = {"path": settings.AREAS_PATH}
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


def check_feed(poller: Optional[FeedPoller], feed: FeedSource, now: int) -> ComponentHealth:
    comp = ComponentHealth(name=f"{feed.value}_feed")
    start = time.monotonic()

    if poller is None:
        comp.status = HealthStatus.DEGRADED
        comp.message = "Polling disabled"
    else:
        status = poller.status[feed]
        interval = (
            poller.live_interval_seconds if feed == FeedSource.LIVE
            else poller.history_interval_seconds
        )
        comp.details = status.to_dict()
        if not poller.is_running:
            comp.status = HealthStatus.UNHEALTHY
            comp.message = "Poller not running"
        elif status.last_success_at is None:
            comp.status = HealthStatus.DEGRADED if status.polls else HealthStatus.HEALTHY
            comp.message = "No successful fetch yet"
        else:
            age = (now - status.last_success_at) / 1000
            comp.details["last_success_age_s"] = round(age, 1)
            if age > interval * STALE_FEED_INTERVALS:
                comp.status = HealthStatus.DEGRADED
                comp.message = f"Last successful fetch {age:.0f}s ago"
            else:
                comp.message = "Fresh"

    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


def check_store(store: Optional[AlertStore]) -> ComponentHealth:
    comp = ComponentHealth(name="alert_store")
    start = time.monotonic()
    if store is None:
        comp.status = HealthStatus.UNHEALTHY
        comp.message = "Store not initialised"
    else:
        comp.details = store.stats()
        comp.message = f"{comp.details['records'] + comp.details['injected']} active records"
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def run_health_check(
    store: Optional[AlertStore],
    catalog: Optional[AreaCatalog],
    poller: Optional[FeedPoller],
) -> HealthReport:
    """Run all health checks and aggregate into a report."""
    report = HealthReport(
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime_seconds=time.monotonic() - _start_time,
    )
    now = store.now() if store is not None else int(time.time() * 1000)

    report.components = [
        check_catalog(catalog),
        check_feed(poller, FeedSource.LIVE, now),
        check_feed(poller, FeedSource.HISTORY, now),
        check_store(store),
    ]

    # Aggregate status
    statuses = [c.status for c in report.components]
    if HealthStatus.UNHEALTHY in statuses:
        report.status = HealthStatus.UNHEALTHY
    elif HealthStatus.DEGRADED in statuses:
        report.status = HealthStatus.DEGRADED
    else:
        report.status = HealthStatus.HEALTHY

    return report

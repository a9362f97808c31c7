"""
models.py — Shared data structures for alert ingestion and the snapshot.

Defines:
    • AlertType          — normalized alert category
    • FeedSource         — which upstream feed produced a scan
    • AlertRecord        — one live alert per area
    • EarlyWarningNotice — the singleton "news flash"
    • ScanEntry / FeedScan — normalized output of one feed fetch
    • Snapshot           — the read contract handed to remote callers

═══════════════════════════════════════════════════════════════════════════
RECORD LIFECYCLE
═══════════════════════════════════════════════════════════════════════════

    NONE ──first report──▶ ACTIVE ──re-reported──▶ ACTIVE (started_at kept)
                              │
                              └─absent─▶ EXPIRING ──elapsed > migun + 30s──▶ REMOVED

REMOVED is terminal for a record instance. A later report for the same area
starts again at NONE with a fresh started_at.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class AlertType(str, Enum):
    """Normalized alert categories, independent of upstream numeric codes."""
    MISSILES               = "missiles"
    HOSTILE_AIRCRAFT       = "hostile_aircraft"
    EARTHQUAKE             = "earthquake"
    TSUNAMI                = "tsunami"
    RADIOLOGICAL           = "radiological"
    HAZARDOUS_MATERIALS    = "hazardous_materials"
    TERRORIST_INFILTRATION = "terrorist_infiltration"
    NON_CONVENTIONAL       = "non_conventional"
    GENERAL                = "general"
    EARLY_WARNING          = "early_warning"   # becomes a notice, never a record
    DRILL                  = "drill"           # discarded at ingestion
    UNKNOWN                = "unknown"         # unmapped code, still an alert


class FeedSource(str, Enum):
    LIVE    = "live"
    HISTORY = "history"


@dataclass
class AlertRecord:
    """
    A single area's active alert.

    ``started_at`` is the epoch millisecond of first detection and never
    changes while the record exists.
    """
    area: str
    migun_time: int
    started_at: int
    type: AlertType = AlertType.MISSILES
    instructions: Optional[str] = None

    def elapsed_seconds(self, now: int) -> float:
        return (now - self.started_at) / 1000

    def is_expired(self, now: int, grace_seconds: int) -> bool:
        """True once the grace window after migun_time has fully passed."""
        return self.elapsed_seconds(now) > self.migun_time + grace_seconds

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "area": self.area,
            "migun_time": self.migun_time,
            "started_at": self.started_at,
            "type": self.type.value,
        }
        if self.instructions:
            d["instructions"] = self.instructions
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AlertRecord":
        try:
            alert_type = AlertType(data.get("type") or AlertType.MISSILES.value)
        except ValueError:
            alert_type = AlertType.UNKNOWN
        return cls(
            area=str(data["area"]),
            migun_time=int(data["migun_time"]),
            started_at=int(data["started_at"]),
            type=alert_type,
            instructions=data.get("instructions"),
        )


@dataclass
class EarlyWarningNotice:
    """Feed-wide heads-up issued ahead of a possible strike."""
    instructions: str
    timestamp: int
    areas: List[str] = field(default_factory=list)

    def is_expired(self, now: int, ttl_seconds: int) -> bool:
        return (now - self.timestamp) / 1000 > ttl_seconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "newsFlash",
            "instructions": self.instructions,
            "timestamp": self.timestamp,
            "areas": list(self.areas),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EarlyWarningNotice":
        return cls(
            instructions=str(data.get("instructions") or ""),
            timestamp=int(data["timestamp"]),
            areas=[str(a) for a in data.get("areas") or []],
        )


@dataclass(frozen=True)
class ScanEntry:
    """One area reported by one feed scan."""
    area: str
    type: AlertType
    instructions: Optional[str] = None


@dataclass
class FeedScan:
    """Normalized result of a successful fetch from one feed."""
    source: FeedSource
    entries: List[ScanEntry] = field(default_factory=list)
    notice: Optional[EarlyWarningNotice] = None

    @property
    def areas(self) -> List[str]:
        return [e.area for e in self.entries]


@dataclass(frozen=True)
class Snapshot:
    """Consistent {alerts, notice, server_time} view for remote callers."""
    alerts: Tuple[AlertRecord, ...]
    notice: Optional[EarlyWarningNotice]
    server_time: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alerts": [a.to_dict() for a in self.alerts],
            "newsFlash": self.notice.to_dict() if self.notice else None,
            "server_time": self.server_time,
        }

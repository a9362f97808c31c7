"""
phase_engine.py — Pure countdown phase derivation.

═══════════════════════════════════════════════════════════════════════════
PRIORITY (first match wins)
═══════════════════════════════════════════════════════════════════════════

    1. canExit       alert_ended flag set
    2. earlyWarning  notice present, no alert for the selection
    3. safe          no alert for the selection
    4. critical      alert with migun_time ≤ 30 s (whole episode)
    5. yellow        remaining / migun_time > 50 %
       orange        remaining / migun_time > 25 %
       red           otherwise, while remaining > 0
    6. sheltering    remaining reached 0, record still present

Recomputed every tick and never stored; nothing here touches the clock.

Worked example, migun_time = 60 s:

    t = 40 s   remaining 20 s = 33.3 %   → orange
    t = 46 s   remaining 14 s = 23.3 %   → red
    t = 60 s   remaining  0 s            → sheltering
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from migun.app.alerts.models import AlertRecord
from migun.client.config import client_settings

YELLOW_RATIO = 0.50
ORANGE_RATIO = 0.25


class Phase(str, Enum):
    SAFE          = "safe"
    EARLY_WARNING = "earlyWarning"
    CRITICAL      = "critical"
    YELLOW        = "yellow"
    ORANGE        = "orange"
    RED           = "red"
    SHELTERING    = "sheltering"
    CAN_EXIT      = "canExit"

    @property
    def has_alert(self) -> bool:
        return self in _ALERT_PHASES


_ALERT_PHASES = frozenset({Phase.CRITICAL, Phase.YELLOW, Phase.ORANGE, Phase.RED, Phase.SHELTERING})


@dataclass(frozen=True)
class PhaseInputs:
    """Everything a tick knows about the current selection."""
    alert: Optional[AlertRecord] = None
    remaining: Optional[float] = None  # seconds; None means "not computed"
    notice_present: bool = False
    alert_ended: bool = False
    critical_threshold: int = client_settings.CRITICAL_THRESHOLD_SECONDS

    @property
    def is_critical(self) -> bool:
        return self.alert is not None and self.alert.migun_time <= self.critical_threshold


def compute_phase(inputs: PhaseInputs) -> Phase:
    if inputs.alert_ended:
        return Phase.CAN_EXIT

    alert = inputs.alert
    if alert is None:
        return Phase.EARLY_WARNING if inputs.notice_present else Phase.SAFE

    if inputs.is_critical:
        return Phase.CRITICAL

    remaining = alert.migun_time if inputs.remaining is None else inputs.remaining
    if remaining <= 0:
        return Phase.SHELTERING

    ratio = remaining / alert.migun_time
    if ratio > YELLOW_RATIO:
        return Phase.YELLOW
    if ratio > ORANGE_RATIO:
        return Phase.ORANGE
    return Phase.RED


def progress_percent(inputs: PhaseInputs) -> float:
    """Fill level of the countdown ring, 100 when there is nothing to count."""
    if inputs.alert is None or inputs.remaining is None or inputs.alert.migun_time <= 0:
        return 100.0
    return max(0.0, min(100.0, inputs.remaining / inputs.alert.migun_time * 100))


# ---------------------------------------------------------------------------
# Display treatments
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PhaseTreatment:
    color: str
    background_color: str
    badge_color: str
    text_key: str
    instruction_key: Optional[str] = None
    estimate_key: Optional[str] = None
    badge_key: Optional[str] = None


PHASE_TREATMENTS: Dict[Phase, PhaseTreatment] = {
    Phase.SAFE: PhaseTreatment(
        "#4ade80", "#1a1a2e", "#166534", "phase.safe",
    ),
    Phase.EARLY_WARNING: PhaseTreatment(
        "#fbbf24", "#2e2a1a", "#92400e", "phase.earlyWarning",
        "instruction.earlyWarning", None, "badge.earlyWarning",
    ),
    Phase.CRITICAL: PhaseTreatment(
        "#f87171", "#2e1f1f", "#991b1b", "phase.critical",
        "instruction.critical", "estimate.critical", "badge.alertActive",
    ),
    Phase.YELLOW: PhaseTreatment(
        "#fcd34d", "#2e2a1a", "#92400e", "phase.yellow",
        "instruction.yellow", "estimate.reasonable", "badge.alertActive",
    ),
    Phase.ORANGE: PhaseTreatment(
        "#fb923c", "#2e221a", "#9a3412", "phase.orange",
        "instruction.orange", "estimate.limited", "badge.alertActive",
    ),
    Phase.RED: PhaseTreatment(
        "#f87171", "#2e1f1f", "#991b1b", "phase.red",
        "instruction.red", "estimate.ended", "badge.alertActive",
    ),
    Phase.SHELTERING: PhaseTreatment(
        "#60a5fa", "#1e293b", "#1e40af", "phase.sheltering",
        "instruction.sheltering", None, "badge.alertActive",
    ),
    Phase.CAN_EXIT: PhaseTreatment(
        "#4ade80", "#1a2e1f", "#166534", "phase.canExit",
        "instruction.canExit",
    ),
}

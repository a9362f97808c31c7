"""
test_phase_engine.py — Tests for phase derivation and display treatments.

Covers:
    • Priority order (canExit > earlyWarning > safe > critical > ratio > sheltering)
    • 30/31 s critical threshold
    • Scenario A ratio boundaries
    • Progress ring
    • Every phase has a treatment

Run with:
    pytest tests/test_phase_engine.py -v
"""

from __future__ import annotations

import pytest

from migun.app.alerts.models import AlertRecord
from migun.client.phase_engine import (
    PHASE_TREATMENTS,
    Phase,
    PhaseInputs,
    compute_phase,
    progress_percent,
)

from conftest import T0


def _alert(migun_time: int, area: str = "A") -> AlertRecord:
    return AlertRecord(area=area, migun_time=migun_time, started_at=T0)


def _phase(**kwargs) -> Phase:
    return compute_phase(PhaseInputs(**kwargs))


class TestPriority:

    def test_nothing_is_safe(self):
        assert _phase() == Phase.SAFE

    def test_can_exit_beats_active_alert(self):
        assert _phase(alert=_alert(60), remaining=40, alert_ended=True) == Phase.CAN_EXIT

    def test_can_exit_beats_notice(self):
        assert _phase(notice_present=True, alert_ended=True) == Phase.CAN_EXIT

    def test_early_warning_without_alert(self):
        assert _phase(notice_present=True) == Phase.EARLY_WARNING

    def test_alert_beats_early_warning(self):
        assert _phase(alert=_alert(60), remaining=60, notice_present=True) == Phase.YELLOW

    def test_critical_beats_sheltering(self):
        assert _phase(alert=_alert(15), remaining=0) == Phase.CRITICAL

    def test_sheltering_when_time_is_up(self):
        assert _phase(alert=_alert(60), remaining=0) == Phase.SHELTERING


class TestCriticalThreshold:

    def test_thirty_is_critical(self):
        assert _phase(alert=_alert(30), remaining=30) == Phase.CRITICAL

    def test_thirty_one_full_is_yellow(self):
        assert _phase(alert=_alert(31), remaining=31) == Phase.YELLOW

    @pytest.mark.parametrize("remaining", [15, 7, 1, 0])
    def test_critical_for_whole_episode(self, remaining):
        assert _phase(alert=_alert(15), remaining=remaining) == Phase.CRITICAL

    def test_zero_budget_area_is_critical(self):
        assert _phase(alert=_alert(0), remaining=0) == Phase.CRITICAL


class TestRatioBands:

    def test_scenario_a_orange_at_40s(self):
        assert _phase(alert=_alert(60), remaining=20) == Phase.ORANGE

    def test_scenario_a_red_at_46s(self):
        assert _phase(alert=_alert(60), remaining=14) == Phase.RED

    @pytest.mark.parametrize("remaining,expected", [
        (60, Phase.YELLOW),
        (30.01, Phase.YELLOW),
        (30, Phase.ORANGE),     # exactly 50 % is not > 50 %
        (15.01, Phase.ORANGE),
        (15, Phase.RED),        # exactly 25 %
        (0.1, Phase.RED),
        (0, Phase.SHELTERING),
    ])
    def test_boundaries(self, remaining, expected):
        assert _phase(alert=_alert(60), remaining=remaining) == expected

    def test_missing_remaining_treated_as_full(self):
        assert _phase(alert=_alert(90)) == Phase.YELLOW


class TestProgress:

    def test_full_without_alert(self):
        assert progress_percent(PhaseInputs()) == 100.0

    def test_fraction(self):
        assert progress_percent(PhaseInputs(alert=_alert(60), remaining=15)) == pytest.approx(25.0)

    def test_clamped(self):
        assert progress_percent(PhaseInputs(alert=_alert(60), remaining=0)) == 0.0
        assert progress_percent(PhaseInputs(alert=_alert(60), remaining=90)) == 100.0


class TestTreatments:

    def test_every_phase_has_treatment(self):
        assert set(PHASE_TREATMENTS) == set(Phase)

    def test_text_keys_follow_phase_names(self):
        for phase, treatment in PHASE_TREATMENTS.items():
            assert treatment.text_key == f"phase.{phase.value}"

    def test_estimate_keys(self):
        assert PHASE_TREATMENTS[Phase.YELLOW].estimate_key == "estimate.reasonable"
        assert PHASE_TREATMENTS[Phase.ORANGE].estimate_key == "estimate.limited"
        assert PHASE_TREATMENTS[Phase.RED].estimate_key == "estimate.ended"
        assert PHASE_TREATMENTS[Phase.CRITICAL].estimate_key == "estimate.critical"
        assert PHASE_TREATMENTS[Phase.SAFE].estimate_key is None

    def test_alert_phases(self):
        assert {p for p in Phase if p.has_alert} == {
            Phase.CRITICAL, Phase.YELLOW, Phase.ORANGE, Phase.RED, Phase.SHELTERING,
        }

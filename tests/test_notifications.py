"""
test_notifications.py — Tests for the edge-triggered notification dispatcher.

Covers:
    • At-most-once alert start per episode regardless of tick rate
    • Critical vs normal variants
    • Reminder cadence (10 s / 30 s)
    • Early warning, early-warning-ended and all-clear edges
    • Locked dispatcher (guards advance, sink untouched)

Run with:
    pytest tests/test_notifications.py -v
"""

from __future__ import annotations

from typing import List, Sequence, Tuple

import pytest

from migun.app.alerts.models import AlertRecord
from migun.app.core.clock import ManualClock
from migun.client.notifications import (
    LoggingNotificationSink,
    NotificationDispatcher,
    NotificationKind,
    Variant,
)
from migun.client.phase_engine import Phase

from conftest import T0


class RecordingSink:
    """Collects side effects instead of producing them."""

    def __init__(self):
        self.calls: List[Tuple[str, object]] = []

    def play_tone(self, frequency_hz: float, duration_s: float) -> None:
        self.calls.append(("tone", frequency_hz))

    def speak(self, key: str) -> None:
        self.calls.append(("speak", key))

    def vibrate(self, pattern_ms: Sequence[int]) -> None:
        self.calls.append(("vibrate", tuple(pattern_ms)))

    def spoken(self) -> List[str]:
        return [arg for kind, arg in self.calls if kind == "speak"]


def _alert(migun_time: int, started_at: int = T0, area: str = "A") -> AlertRecord:
    return AlertRecord(area=area, migun_time=migun_time, started_at=started_at)


@pytest.fixture
def clock():
    return ManualClock(T0)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def dispatcher(sink, clock):
    return NotificationDispatcher(sink, clock=clock)


def _run(dispatcher, clock, phase, alert, seconds, tick=0.1):
    """Tick for ``seconds`` at ``tick`` spacing; return all kinds fired."""
    fired = []
    for _ in range(int(round(seconds / tick))):
        fired.extend(n.kind for n in dispatcher.on_tick(phase, alert))
        clock.advance(tick)
    return fired


class TestAlertStart:

    def test_fires_once_per_episode(self, dispatcher, clock, sink):
        alert = _alert(60)
        fired = _run(dispatcher, clock, Phase.YELLOW, alert, 5)
        assert fired == [NotificationKind.ALERT_START]
        assert sink.spoken() == ["voice.enterShelter"]
        assert ("vibrate", (200, 100, 200)) in sink.calls

    def test_tick_rate_does_not_matter(self, sink, clock):
        fast = NotificationDispatcher(sink, clock=clock)
        kinds = _run(fast, clock, Phase.YELLOW, _alert(60), 5, tick=0.01)
        assert kinds.count(NotificationKind.ALERT_START) == 1

    def test_critical_variant(self, dispatcher, sink):
        notes = dispatcher.on_tick(Phase.CRITICAL, _alert(30))
        assert notes[0].variant == Variant.CRITICAL
        assert notes[0].voice_key == "voice.braceYourself"
        assert ("vibrate", (500, 200, 500, 200, 500)) in sink.calls

    def test_normal_variant_above_threshold(self, dispatcher):
        assert dispatcher.on_tick(Phase.YELLOW, _alert(31))[0].variant == Variant.NORMAL

    def test_guard_clears_when_alert_clears(self, dispatcher, clock):
        alert = _alert(60)
        assert _run(dispatcher, clock, Phase.YELLOW, alert, 1) == [NotificationKind.ALERT_START]
        _run(dispatcher, clock, Phase.SAFE, None, 1)
        second = _alert(60, started_at=clock())
        assert _run(dispatcher, clock, Phase.YELLOW, second, 1) == [NotificationKind.ALERT_START]

    def test_new_episode_without_gap(self, dispatcher, clock):
        dispatcher.on_tick(Phase.YELLOW, _alert(60))
        clock.advance(1)
        notes = dispatcher.on_tick(Phase.YELLOW, _alert(60, started_at=clock()))
        assert [n.kind for n in notes] == [NotificationKind.ALERT_START]


class TestReminder:

    def test_normal_every_thirty_seconds(self, dispatcher, clock):
        fired = _run(dispatcher, clock, Phase.YELLOW, _alert(90), 95)
        assert fired.count(NotificationKind.ALERT_START) == 1
        assert fired.count(NotificationKind.REMINDER) == 3

    def test_critical_every_ten_seconds(self, dispatcher, clock):
        fired = _run(dispatcher, clock, Phase.CRITICAL, _alert(15), 45)
        assert fired.count(NotificationKind.REMINDER) == 4

    def test_reminders_continue_while_sheltering(self, dispatcher, clock):
        alert = _alert(31)
        fired = _run(dispatcher, clock, Phase.YELLOW, alert, 31)
        fired += _run(dispatcher, clock, Phase.SHELTERING, alert, 30)
        assert fired.count(NotificationKind.REMINDER) == 2

    def test_reminders_stop_when_alert_clears(self, dispatcher, clock):
        _run(dispatcher, clock, Phase.YELLOW, _alert(60), 10)
        fired = _run(dispatcher, clock, Phase.SAFE, None, 60)
        assert NotificationKind.REMINDER not in fired

    def test_long_stall_yields_single_reminder(self, dispatcher, clock):
        alert = _alert(90)
        dispatcher.on_tick(Phase.YELLOW, alert)
        clock.advance(95)
        assert [n.kind for n in dispatcher.on_tick(Phase.YELLOW, alert)] == [NotificationKind.REMINDER]
        clock.advance(1)
        assert dispatcher.on_tick(Phase.YELLOW, alert) == []


class TestEarlyWarningAndAllClear:

    def test_early_warning_once(self, dispatcher, clock, sink):
        fired = _run(dispatcher, clock, Phase.EARLY_WARNING, None, 10)
        assert fired == [NotificationKind.EARLY_WARNING]
        assert sink.spoken() == ["voice.earlyWarning"]

    def test_early_warning_ended_on_return_to_safe(self, dispatcher, clock, sink):
        _run(dispatcher, clock, Phase.EARLY_WARNING, None, 1)
        fired = _run(dispatcher, clock, Phase.SAFE, None, 1)
        assert fired == [NotificationKind.EARLY_WARNING_ENDED]
        assert sink.spoken()[-1] == "voice.earlyWarningEnded"

    def test_no_early_warning_ended_when_alert_follows(self, dispatcher, clock):
        _run(dispatcher, clock, Phase.EARLY_WARNING, None, 1)
        fired = _run(dispatcher, clock, Phase.YELLOW, _alert(60), 1)
        assert fired == [NotificationKind.ALERT_START]

    def test_all_clear_once(self, dispatcher, clock, sink):
        _run(dispatcher, clock, Phase.YELLOW, _alert(60), 1)
        fired = _run(dispatcher, clock, Phase.CAN_EXIT, None, 120)
        assert fired == [NotificationKind.ALL_CLEAR]
        assert sink.spoken()[-1] == "voice.canExit"

    def test_all_clear_rearms_after_leaving(self, dispatcher, clock):
        _run(dispatcher, clock, Phase.CAN_EXIT, None, 1)
        _run(dispatcher, clock, Phase.SAFE, None, 1)
        assert _run(dispatcher, clock, Phase.CAN_EXIT, None, 1) == [NotificationKind.ALL_CLEAR]


class TestLock:

    def test_locked_suppresses_side_effects(self, sink, clock):
        dispatcher = NotificationDispatcher(sink, clock=clock, locked=True)
        notes = dispatcher.on_tick(Phase.YELLOW, _alert(60))
        assert [n.kind for n in notes] == [NotificationKind.ALERT_START]
        assert notes[0].delivered is False
        assert sink.calls == []

    def test_unlock_does_not_replay(self, sink, clock):
        dispatcher = NotificationDispatcher(sink, clock=clock, locked=True)
        alert = _alert(60)
        _run(dispatcher, clock, Phase.YELLOW, alert, 5)
        dispatcher.unlock()
        assert _run(dispatcher, clock, Phase.YELLOW, alert, 5) == []
        assert sink.calls == []

    def test_reminder_delivered_after_unlock(self, sink, clock):
        dispatcher = NotificationDispatcher(sink, clock=clock, locked=True)
        alert = _alert(60)
        _run(dispatcher, clock, Phase.YELLOW, alert, 5)
        dispatcher.unlock()
        fired = _run(dispatcher, clock, Phase.YELLOW, alert, 26)
        assert fired == [NotificationKind.REMINDER]
        assert sink.spoken() == ["voice.enterShelter"]

    def test_reset_rearms_everything(self, dispatcher, clock):
        alert = _alert(60)
        dispatcher.on_tick(Phase.YELLOW, alert)
        dispatcher.reset()
        assert [n.kind for n in dispatcher.on_tick(Phase.YELLOW, alert)] == [NotificationKind.ALERT_START]


class TestLoggingSink:

    def test_logs_each_effect(self, caplog, clock):
        dispatcher = NotificationDispatcher(LoggingNotificationSink(), clock=clock)
        with caplog.at_level("INFO", logger="migun.client.notifications"):
            dispatcher.on_tick(Phase.CRITICAL, _alert(15))
        text = caplog.text
        assert "Tone 440 Hz" in text
        assert "Speak: voice.braceYourself" in text
        assert "Vibrate" in text


class BrokenSpeakerSink(RecordingSink):
    """Audio output unavailable; speech and vibration still work."""

    def play_tone(self, frequency_hz: float, duration_s: float) -> None:
        raise RuntimeError("audio context unavailable")


class TestFailingSink:

    def test_tone_failure_does_not_block_other_effects(self, clock, caplog):
        sink = BrokenSpeakerSink()
        dispatcher = NotificationDispatcher(sink, clock=clock)
        with caplog.at_level("ERROR", logger="migun.client.notifications"):
            notes = dispatcher.on_tick(Phase.YELLOW, _alert(60))
        assert [n.kind for n in notes] == [NotificationKind.ALERT_START]
        assert notes[0].delivered is True
        assert sink.spoken() == ["voice.enterShelter"]
        assert ("vibrate", (200, 100, 200)) in sink.calls
        assert "Could not deliver alert_start via play_tone" in caplog.text

    def test_guards_advance_despite_failures(self, clock):
        dispatcher = NotificationDispatcher(BrokenSpeakerSink(), clock=clock)
        fired = _run(dispatcher, clock, Phase.YELLOW, _alert(90), 35)
        assert fired == [NotificationKind.ALERT_START, NotificationKind.REMINDER]

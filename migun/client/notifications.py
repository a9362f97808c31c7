"""
notifications.py — Edge-triggered notification dispatch.

═══════════════════════════════════════════════════════════════════════════
GUARDS
═══════════════════════════════════════════════════════════════════════════

Each kind owns one guard. A guard is set when its condition becomes true
and the notification fires at that moment only; the guard clears when the
condition becomes false. Tick rate therefore never changes how many
notifications an episode produces.

    Kind                  Condition                  Fires
    ───────────────────   ────────────────────────   ─────────────────────────
    alert_start           alert for the selection    on entry, critical/normal
    reminder              alert for the selection    every 10 s (critical) or
                                                     30 s after alert_start
    early_warning         phase == earlyWarning      on entry
    early_warning_ended   early warning → safe       on that transition
    all_clear             phase == canExit           on entry

While the dispatcher is locked (audio not yet unlocked by a user gesture)
guards still advance but nothing reaches the sink. Unlocking does not
replay anything that was suppressed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional, Protocol, Sequence, Tuple

from migun.app.alerts.models import AlertRecord
from migun.app.core.clock import Clock, now_ms
from migun.client.config import client_settings
from migun.client.phase_engine import Phase

logger = logging.getLogger(__name__)

CALM_TONE_HZ = 440.0
CALM_TONE_SECONDS = 0.8


class NotificationKind(str, Enum):
    ALERT_START         = "alert_start"
    REMINDER            = "reminder"
    EARLY_WARNING       = "early_warning"
    EARLY_WARNING_ENDED = "early_warning_ended"
    ALL_CLEAR           = "all_clear"


class Variant(str, Enum):
    NORMAL   = "normal"
    CRITICAL = "critical"


# Voice string keys; the text itself lives with the UI translations.
VOICE_KEYS = {
    (NotificationKind.ALERT_START, Variant.NORMAL):   "voice.enterShelter",
    (NotificationKind.ALERT_START, Variant.CRITICAL): "voice.braceYourself",
    (NotificationKind.REMINDER, Variant.NORMAL):      "voice.enterShelter",
    (NotificationKind.REMINDER, Variant.CRITICAL):    "voice.braceYourself",
    (NotificationKind.EARLY_WARNING, None):           "voice.earlyWarning",
    (NotificationKind.EARLY_WARNING_ENDED, None):     "voice.earlyWarningEnded",
    (NotificationKind.ALL_CLEAR, None):               "voice.canExit",
}

VIBRATION_PATTERNS = {
    Variant.NORMAL:   (200, 100, 200),
    Variant.CRITICAL: (500, 200, 500, 200, 500),
}


@dataclass(frozen=True)
class Notification:
    kind: NotificationKind
    voice_key: str
    at: int
    variant: Optional[Variant] = None
    area: Optional[str] = None
    delivered: bool = True


class NotificationSink(Protocol):
    """Where side effects go: audio, speech synthesis, vibration."""

    def play_tone(self, frequency_hz: float, duration_s: float) -> None: ...

    def speak(self, key: str) -> None: ...

    def vibrate(self, pattern_ms: Sequence[int]) -> None: ...


class LoggingNotificationSink:
    """Default sink for headless use: every side effect becomes a log line."""

    def play_tone(self, frequency_hz: float, duration_s: float) -> None:
        logger.info("Tone %.0f Hz for %.1fs", frequency_hz, duration_s)

    def speak(self, key: str) -> None:
        logger.info("Speak: %s", key)

    def vibrate(self, pattern_ms: Sequence[int]) -> None:
        logger.info("Vibrate: %s", list(pattern_ms))


class NotificationDispatcher:
    """
    Turns per-tick phases into at-most-once notifications.

    Usage:
        dispatcher = NotificationDispatcher(sink, locked=True)
        dispatcher.unlock()                        # after a user gesture
        fired = dispatcher.on_tick(phase, alert)   # every tick
    """

    def __init__(
        self,
        sink: Optional[NotificationSink] = None,
        *,
        clock: Clock = now_ms,
        locked: bool = False,
        critical_threshold: int = client_settings.CRITICAL_THRESHOLD_SECONDS,
        critical_reminder_seconds: int = client_settings.CRITICAL_REMINDER_SECONDS,
        normal_reminder_seconds: int = client_settings.NORMAL_REMINDER_SECONDS,
    ):
        self.sink = sink if sink is not None else LoggingNotificationSink()
        self.critical_threshold = critical_threshold
        self.critical_reminder_seconds = critical_reminder_seconds
        self.normal_reminder_seconds = normal_reminder_seconds
        self._clock = clock
        self._locked = locked
        self.reset()

    # ── Lock ──

    @property
    def locked(self) -> bool:
        return self._locked

    def lock(self) -> None:
        self._locked = True

    def unlock(self) -> None:
        if self._locked:
            logger.info("Notifications unlocked")
        self._locked = False

    # ── Guards ──

    def reset(self) -> None:
        """Clear every guard (selection changed)."""
        self._alert_guard: Optional[Tuple[str, int]] = None  # (area, started_at)
        self._next_reminder_at: Optional[int] = None
        self._early_warning_guard = False
        self._all_clear_guard = False

    def _variant(self, alert: AlertRecord) -> Variant:
        return Variant.CRITICAL if alert.migun_time <= self.critical_threshold else Variant.NORMAL

    def _cadence_ms(self, variant: Variant) -> int:
        seconds = self.critical_reminder_seconds if variant == Variant.CRITICAL else self.normal_reminder_seconds
        return seconds * 1000

    def on_tick(self, phase: Phase, alert: Optional[AlertRecord] = None) -> List[Notification]:
        """Advance all guards for one tick; returns whatever fired."""
        now = self._clock()
        fired: List[Notification] = []

        # alert_start / reminder
        if alert is not None:
            key = (alert.area, alert.started_at)
            variant = self._variant(alert)
            if self._alert_guard != key:
                self._alert_guard = key
                self._next_reminder_at = now + self._cadence_ms(variant)
                fired.append(self._emit(NotificationKind.ALERT_START, now, variant, alert.area))
            elif self._next_reminder_at is not None and now >= self._next_reminder_at:
                self._next_reminder_at += self._cadence_ms(variant)
                # A long stall (suspended tab) yields one reminder, not a burst.
                if self._next_reminder_at <= now:
                    self._next_reminder_at = now + self._cadence_ms(variant)
                fired.append(self._emit(NotificationKind.REMINDER, now, variant, alert.area))
        else:
            self._alert_guard = None
            self._next_reminder_at = None

        # early_warning / early_warning_ended
        if phase == Phase.EARLY_WARNING:
            if not self._early_warning_guard:
                self._early_warning_guard = True
                fired.append(self._emit(NotificationKind.EARLY_WARNING, now))
        elif self._early_warning_guard:
            self._early_warning_guard = False
            if phase == Phase.SAFE:
                fired.append(self._emit(NotificationKind.EARLY_WARNING_ENDED, now))

        # all_clear
        if phase == Phase.CAN_EXIT:
            if not self._all_clear_guard:
                self._all_clear_guard = True
                fired.append(self._emit(NotificationKind.ALL_CLEAR, now))
        else:
            self._all_clear_guard = False

        return fired

    def _emit(
        self,
        kind: NotificationKind,
        now: int,
        variant: Optional[Variant] = None,
        area: Optional[str] = None,
    ) -> Notification:
        note = Notification(
            kind=kind,
            voice_key=VOICE_KEYS[(kind, variant)],
            at=now,
            variant=variant,
            area=area,
            delivered=not self._locked,
        )
        if self._locked:
            logger.debug("Notification %s suppressed (locked)", kind.value)
            return note

        logger.info("Notification: %s%s", kind.value, f" ({variant.value})" if variant else "")
        if kind == NotificationKind.ALERT_START:
            self._deliver(kind, self.sink.play_tone, CALM_TONE_HZ, CALM_TONE_SECONDS)
            self._deliver(kind, self.sink.vibrate, VIBRATION_PATTERNS[variant])
        elif kind == NotificationKind.REMINDER:
            self._deliver(kind, self.sink.play_tone, CALM_TONE_HZ, CALM_TONE_SECONDS)
        self._deliver(kind, self.sink.speak, note.voice_key)
        return note

    @staticmethod
    def _deliver(kind: NotificationKind, effect: Callable[..., None], *args: Any) -> None:
        """Run one sink effect; a failing device never stops the countdown."""
        try:
            effect(*args)
        except Exception:
            logger.exception("Could not deliver %s via %s", kind.value, effect.__name__)

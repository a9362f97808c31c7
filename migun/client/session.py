"""
Countdown session — the client tick loop.

Every tick (100 ms by default):

    engine.observe(selection)        → alert_ended flag
    compute_phase(PhaseInputs(...))  → Phase
    dispatcher.on_tick(phase, alert) → notifications

and the result is handed to ``on_frame`` as one immutable ``SessionFrame``.
The poll timer lives in the sync engine; both timers share one event loop
and ``stop()`` cancels both.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Tuple

from migun.app.alerts.models import AlertRecord, EarlyWarningNotice
from migun.client.config import client_settings
from migun.client.notifications import Notification, NotificationDispatcher
from migun.client.phase_engine import (
    PHASE_TREATMENTS,
    Phase,
    PhaseInputs,
    PhaseTreatment,
    compute_phase,
    progress_percent,
)
from migun.client.sync_engine import AlertSyncEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionFrame:
    """Everything a renderer needs for one tick."""
    selection: Optional[str]
    phase: Phase
    treatment: PhaseTreatment
    progress: float
    remaining: Optional[float] = None
    alert: Optional[AlertRecord] = None
    notice: Optional[EarlyWarningNotice] = None
    alert_ended: bool = False
    other_active: Tuple[str, ...] = ()
    notifications: Tuple[Notification, ...] = ()
    error: Optional[str] = None


class CountdownSession:
    """
    Binds one selection to a sync engine and a dispatcher.

    Usage:
        session = CountdownSession(engine, "חיפה - מערב", on_frame=render)
        session.start()
        ...
        session.change_selection("אשדוד - א,ב,ד,ה")
        ...
        await session.stop()
    """

    def __init__(
        self,
        engine: AlertSyncEngine,
        selection: Optional[str],
        dispatcher: Optional[NotificationDispatcher] = None,
        *,
        tick_interval_ms: int = client_settings.TICK_INTERVAL_MS,
        on_frame: Optional[Callable[[SessionFrame], None]] = None,
        watch: Iterable[str] = (),
    ):
        self.engine = engine
        self.selection = selection
        self.dispatcher = dispatcher or NotificationDispatcher(clock=engine.local_now)
        self.tick_interval_ms = tick_interval_ms
        self.on_frame = on_frame
        self.watch: List[str] = list(watch)
        self.last_frame: Optional[SessionFrame] = None
        self._task: Optional[asyncio.Task] = None

    def tick(self) -> SessionFrame:
        state = self.engine.state
        alert_ended = self.engine.observe(self.selection)
        alert = self.engine.active_alert(self.selection)
        remaining = self.engine.remaining_time(alert) if alert is not None else None

        inputs = PhaseInputs(
            alert=alert,
            remaining=remaining,
            notice_present=state.notice is not None,
            alert_ended=alert_ended,
        )
        phase = compute_phase(inputs)
        fired = self.dispatcher.on_tick(phase, alert)

        frame = SessionFrame(
            selection=self.selection,
            phase=phase,
            treatment=PHASE_TREATMENTS[phase],
            progress=progress_percent(inputs),
            remaining=remaining,
            alert=alert,
            notice=state.notice,
            alert_ended=alert_ended,
            other_active=tuple(self.engine.other_active(self.watch, self.selection)),
            notifications=tuple(fired),
            error=state.error,
        )
        if self.last_frame is None or self.last_frame.phase != phase:
            logger.info(
                "Phase %s for %s", phase.value, self.selection or "-",
                extra={"area": self.selection},
            )
        self.last_frame = frame
        if self.on_frame is not None:
            self.on_frame(frame)
        return frame

    def change_selection(self, selection: Optional[str]) -> None:
        """Switch area; per-selection ended state and guards start fresh."""
        if selection == self.selection:
            return
        if self.selection:
            self.engine.forget(self.selection)
        self.dispatcher.reset()
        self.selection = selection
        self.last_frame = None

    # ── Timers ──

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self) -> None:
        interval = self.tick_interval_ms / 1000
        while True:
            try:
                self.tick()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Countdown tick failed for %s", self.selection)
            await asyncio.sleep(interval)

    def start(self) -> None:
        """Start polling and ticking; a second call while running is a no-op."""
        self.engine.start()
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name="migun-countdown-tick")

    async def stop(self) -> None:
        """Cancel the tick timer and the engine's poll timer."""
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        await self.engine.stop()

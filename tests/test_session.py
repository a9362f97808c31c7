"""
test_session.py — End-to-end client tick loop against a manual clock.

Covers:
    • Scenario A through the full engine → phase → dispatcher chain
    • Episode end → canExit → safe after the display window
    • Selection change resets per-selection state
    • Other-selection banner
    • Timer lifecycle

Run with:
    pytest tests/test_session.py -v
"""

from __future__ import annotations

import asyncio

import httpx

from migun.app.core.clock import ManualClock
from migun.client.notifications import NotificationDispatcher, NotificationKind
from migun.client.phase_engine import Phase
from migun.client.session import CountdownSession
from migun.client.sync_engine import AlertSyncEngine

from conftest import HAIFA, T0, TLV


class SilentSink:
    def play_tone(self, frequency_hz, duration_s):
        pass

    def speak(self, key):
        pass

    def vibrate(self, pattern_ms):
        pass


def _payload(*alerts, server_time, notice=None):
    return {"alerts": list(alerts), "newsFlash": notice, "server_time": server_time}


def _session(clock, selection="A", **kwargs):
    engine = AlertSyncEngine("http://migun.test", clock=clock)
    dispatcher = NotificationDispatcher(SilentSink(), clock=clock)
    return CountdownSession(engine, selection, dispatcher, **kwargs)


class TestScenarioA:

    def test_phases_over_an_episode(self):
        clock = ManualClock(T0 - 7_000)  # local clock 7 s slow
        session = _session(clock)
        engine = session.engine
        alert = {"area": "A", "migun_time": 60, "started_at": T0}

        assert session.tick().phase == Phase.SAFE

        engine.apply_snapshot(_payload(alert, server_time=T0))
        frame = session.tick()
        assert frame.phase == Phase.YELLOW
        assert [n.kind for n in frame.notifications] == [NotificationKind.ALERT_START]
        assert frame.remaining == 60

        clock.advance(40)
        frame = session.tick()
        assert frame.phase == Phase.ORANGE
        assert round(frame.remaining, 3) == 20

        clock.advance(6)
        assert session.tick().phase == Phase.RED

        clock.advance(20)
        frame = session.tick()
        assert frame.phase == Phase.SHELTERING
        assert frame.progress == 0.0

        # Server drops the record: canExit, then safe after two minutes.
        engine.apply_snapshot(_payload(server_time=T0 + 95_000))
        frame = session.tick()
        assert frame.phase == Phase.CAN_EXIT
        assert frame.alert_ended is True
        assert [n.kind for n in frame.notifications] == [NotificationKind.ALL_CLEAR]

        clock.advance(120)
        assert session.tick().phase == Phase.SAFE

    def test_early_warning_then_alert(self):
        clock = ManualClock(T0)
        session = _session(clock)
        notice = {"type": "newsFlash", "instructions": "מבזק", "timestamp": T0, "areas": []}
        session.engine.apply_snapshot(_payload(server_time=T0, notice=notice))
        assert session.tick().phase == Phase.EARLY_WARNING

        session.engine.apply_snapshot(_payload(
            {"area": "A", "migun_time": 15, "started_at": T0}, server_time=T0, notice=notice,
        ))
        frame = session.tick()
        assert frame.phase == Phase.CRITICAL
        assert frame.treatment.text_key == "phase.critical"


class TestSelection:

    def test_change_selection_resets_state(self):
        clock = ManualClock(T0)
        session = _session(clock, selection=HAIFA)
        engine = session.engine
        engine.apply_snapshot(_payload({"area": HAIFA, "migun_time": 60, "started_at": T0}, server_time=T0))
        session.tick()
        engine.apply_snapshot(_payload(server_time=T0 + 1_000))
        assert session.tick().phase == Phase.CAN_EXIT

        session.change_selection(TLV)
        frame = session.tick()
        assert frame.selection == TLV
        assert frame.phase == Phase.SAFE

    def test_other_active_banner(self):
        clock = ManualClock(T0)
        session = _session(clock, selection=HAIFA, watch=[HAIFA, TLV])
        session.engine.apply_snapshot(_payload(
            {"area": TLV, "migun_time": 90, "started_at": T0}, server_time=T0,
        ))
        frame = session.tick()
        assert frame.phase == Phase.SAFE
        assert frame.other_active == (TLV,)

    def test_frames_delivered_to_callback(self):
        frames = []
        session = _session(ManualClock(T0), on_frame=frames.append)
        session.tick()
        session.tick()
        assert len(frames) == 2
        assert session.last_frame is frames[-1]


class TestLifecycle:

    def test_start_stop(self):
        def handler(request):
            return httpx.Response(200, json=_payload(server_time=T0))

        async def run():
            engine = AlertSyncEngine(
                "http://migun.test",
                client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
                clock=ManualClock(T0),
                poll_interval_ms=10,
            )
            frames = []
            session = CountdownSession(engine, "A", tick_interval_ms=5, on_frame=frames.append)
            session.start()
            session.start()
            await asyncio.sleep(0.05)
            await session.stop()
            return session, frames

        session, frames = asyncio.run(run())
        assert frames
        assert session.is_running is False
        assert session.engine.is_running is False
        assert session.engine.state.loaded is True


class MutedSpeakerSink(SilentSink):
    def play_tone(self, frequency_hz, duration_s):
        raise RuntimeError("audio context unavailable")


class TestTickLoopResilience:

    def _engine(self, clock):
        def handler(request):
            alert = {"area": "A", "migun_time": 60, "started_at": T0}
            return httpx.Response(200, json=_payload(alert, server_time=T0))

        return AlertSyncEngine(
            "http://migun.test",
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            clock=clock,
            poll_interval_ms=10,
        )

    def test_failing_sink_keeps_frames_coming(self):
        clock = ManualClock(T0)

        async def run():
            engine = self._engine(clock)
            await engine.poll_once()
            frames = []
            dispatcher = NotificationDispatcher(MutedSpeakerSink(), clock=clock)
            session = CountdownSession(
                engine, "A", dispatcher, tick_interval_ms=10, on_frame=frames.append,
            )
            session.start()
            await asyncio.sleep(0.1)
            alive = session.is_running
            await session.stop()
            return frames, alive

        frames, alive = asyncio.run(run())
        assert alive is True
        assert len(frames) > 1
        assert frames[0].phase == Phase.YELLOW
        assert [n.kind for n in frames[0].notifications] == [NotificationKind.ALERT_START]

    def test_failing_frame_callback_keeps_ticking(self):
        clock = ManualClock(T0)
        calls = []

        def on_frame(frame):
            calls.append(frame)
            raise ValueError("renderer gone")

        async def run():
            session = CountdownSession(
                self._engine(clock), "A", tick_interval_ms=10, on_frame=on_frame,
            )
            session.start()
            await asyncio.sleep(0.1)
            alive = session.is_running
            await session.stop()
            return alive

        assert asyncio.run(run()) is True
        assert len(calls) > 1

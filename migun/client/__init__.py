"""
client — Countdown engine that consumes the /api/alerts snapshot.

Sub-modules:
    config         — client settings (MIGUN_CLIENT_ env prefix)
    sync_engine    — polling, clock offset, remaining time, ended-edge detection
    phase_engine   — pure phase derivation and display treatments
    notifications  — edge-triggered notification dispatcher
    session        — tick loop wiring the three together
"""

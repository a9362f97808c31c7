"""
alerts — Authoritative per-area alert state.

Sub-modules:
    models  — Data structures shared by ingestion, store and API
    store   — AlertStore: upsert, expiry sweep, snapshot, synthetic injection
"""

"""
categories.py — Upstream numeric category codes → AlertType.

═══════════════════════════════════════════════════════════════════════════
TWO FEEDS, TWO TABLES
═══════════════════════════════════════════════════════════════════════════

The live feed (``alerts.json``, field ``cat``) and the history feed
(``AlertsHistory.json``, field ``category``) number their categories
independently. The same integer means different things in each:

    Code    Live feed              History feed
    ────    ───────────────────    ──────────────────────────
    1       missiles               missiles
    2       general                hostile aircraft
    3       earthquake             non-conventional
    4       radiological           general
    6       hostile aircraft       hazardous materials
    7       hazardous materials    earthquake
    10      early warning          terrorist infiltration
    13      terrorist infiltration —
    14      —                      early warning

The tables are separate contracts. Do not merge them, and do not look a
history code up in the live table or the other way round.

Codes not present in a table resolve to AlertType.UNKNOWN, which is still
treated as an alert: an unrecognised category is safer to surface than
to drop.
"""

from __future__ import annotations

from typing import Dict

from migun.app.alerts.models import AlertType


LIVE_CATEGORY_TYPES: Dict[int, AlertType] = {
    1:   AlertType.MISSILES,
    2:   AlertType.GENERAL,
    3:   AlertType.EARTHQUAKE,
    4:   AlertType.RADIOLOGICAL,
    5:   AlertType.TSUNAMI,
    6:   AlertType.HOSTILE_AIRCRAFT,
    7:   AlertType.HAZARDOUS_MATERIALS,
    8:   AlertType.NON_CONVENTIONAL,
    10:  AlertType.EARLY_WARNING,
    13:  AlertType.TERRORIST_INFILTRATION,
    # Drill variants
    101: AlertType.DRILL,
    102: AlertType.DRILL,
    103: AlertType.DRILL,
    104: AlertType.DRILL,
    105: AlertType.DRILL,
    106: AlertType.DRILL,
    107: AlertType.DRILL,
    113: AlertType.DRILL,
}


HISTORY_CATEGORY_TYPES: Dict[int, AlertType] = {
    1:  AlertType.MISSILES,
    2:  AlertType.HOSTILE_AIRCRAFT,
    3:  AlertType.NON_CONVENTIONAL,
    4:  AlertType.GENERAL,
    6:  AlertType.HAZARDOUS_MATERIALS,
    7:  AlertType.EARTHQUAKE,
    8:  AlertType.TSUNAMI,
    9:  AlertType.RADIOLOGICAL,
    10: AlertType.TERRORIST_INFILTRATION,
    14: AlertType.EARLY_WARNING,
    # Drill variants
    15: AlertType.DRILL,
    16: AlertType.DRILL,
    17: AlertType.DRILL,
    18: AlertType.DRILL,
    19: AlertType.DRILL,
    20: AlertType.DRILL,
    21: AlertType.DRILL,
    22: AlertType.DRILL,
    23: AlertType.DRILL,
    24: AlertType.DRILL,
    25: AlertType.DRILL,
    26: AlertType.DRILL,
    27: AlertType.DRILL,
    28: AlertType.DRILL,
}


def live_category_type(code: int) -> AlertType:
    """Resolve a live-feed ``cat`` code."""
    return LIVE_CATEGORY_TYPES.get(code, AlertType.UNKNOWN)


def history_category_type(code: int) -> AlertType:
    """Resolve a history-feed ``category`` code."""
    return HISTORY_CATEGORY_TYPES.get(code, AlertType.UNKNOWN)

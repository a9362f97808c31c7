"""
Shared fixtures: a manual clock, a small area catalog and a store bound to both.
"""

from __future__ import annotations

import pytest

from migun.app.alerts.store import AlertStore
from migun.app.areas.catalog import Area, AreaCatalog
from migun.app.core.clock import ManualClock

# 2024-10-01 18:05:33 UTC  (21:05:33 Asia/Jerusalem)
T0 = 1_727_805_933_000

SDEROT = "שדרות, איבים, ניר עם"
HAIFA = "חיפה - מערב"
TLV = "תל אביב - מרכז העיר"
ASHKELON = "אשקלון - צפון"


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(T0)


@pytest.fixture
def catalog() -> AreaCatalog:
    return AreaCatalog([
        Area(SDEROT, 15),
        Area(ASHKELON, 30),
        Area(HAIFA, 60),
        Area(TLV, 90),
        Area("A", 60),
    ])


@pytest.fixture
def store(catalog: AreaCatalog, clock: ManualClock) -> AlertStore:
    s = AlertStore(catalog, clock=clock, grace_seconds=30, notice_ttl_seconds=600)
    yield s
    s.close()

"""
Wall-clock helpers.

Every component that reasons about elapsed time takes a ``Clock``,
a zero-argument callable returning epoch milliseconds. Tests drive time
explicitly through ``ManualClock``.
"""

from __future__ import annotations

import time
from typing import Callable

Clock = Callable[[], int]


def now_ms() -> int:
    """Current epoch time in integer milliseconds."""
    return int(time.time() * 1000)


class ManualClock:
    """
    Settable clock for tests and replays.

    >>> clock = ManualClock(1_000)
    >>> clock.advance(2.5)
    >>> clock()
    3500
    """

    def __init__(self, start_ms: int = 0):
        self.now = int(start_ms)

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += int(round(seconds * 1000))

    def set(self, epoch_ms: int) -> None:
        self.now = int(epoch_ms)

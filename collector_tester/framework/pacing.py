"""
Deadline-based pacing for fixed-rate loops.
"""

import asyncio
import time
from typing import Optional


class Ticker:
    """
    Fires at a fixed period measured from its start.

    The first tick fires immediately. Tick ``n`` is due at
    ``start + n * period``, so a loop that falls behind catches up with back
    to back ticks instead of drifting.
    """

    def __init__(self, period_seconds: float, start: Optional[float] = None):
        if period_seconds <= 0:
            raise ValueError(f"period_seconds must be positive, got {period_seconds}")
        self.period_seconds = period_seconds
        self.start = time.monotonic() if start is None else start
        self.ticks = 0

    @property
    def next_due(self) -> float:
        return self.start + self.ticks * self.period_seconds

    @property
    def next_offset(self) -> float:
        """Seconds from start to the next tick."""
        return self.ticks * self.period_seconds

    async def tick(self) -> float:
        """Sleep until the next deadline and return the deadline that fired."""
        due = self.next_due
        delay = due - time.monotonic()
        if delay > 0:
            await asyncio.sleep(delay)
        self.ticks += 1
        return due

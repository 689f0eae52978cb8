"""
Injectable time source.

Services never read the wall clock directly.  Lot ``created_at`` breaks FIFO
ties after ``source_date``, ``inventory_applied_at`` marks a sale as applied
and the stock-in fallback date is today's UTC date; all three come from the
``Clock`` a service was constructed with, so tests can pin them.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Current time, timezone-aware."""

    def today(self) -> date:
        """Calendar date of ``now()`` in UTC."""
        return self.now().astimezone(timezone.utc).date()


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """Frozen clock for tests.  Only ``tick()`` moves it, one second at a time."""

    def __init__(self, start: datetime | None = None):
        self._now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def tick(self) -> datetime:
        self._now += timedelta(seconds=1)
        return self._now

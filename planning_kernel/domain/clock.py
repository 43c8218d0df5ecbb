"""
Injectable time source.

Services stamp every lifecycle timestamp (``submitted_at``,
``dept_reviewed_at``, ``finance_reviewed_at``, ``rejected_at``,
``reopened_at``, ``allocations_created_at``) from the clock they were built
with.  :class:`SystemClock` is the only code that reads the wall clock.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

# Start of fiscal year 2569 (1 October 2025) in UTC.
DEFAULT_TEST_TIME = datetime(2025, 10, 1, 9, 0, tzinfo=timezone.utc)


class Clock(ABC):

    @abstractmethod
    def now(self) -> datetime:
        """Current time, timezone-aware."""


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    A clock that only moves when told to.

    ``now()`` keeps returning the same instant until :meth:`advance` or
    :meth:`set_time` is called.
    """

    def __init__(self, start: datetime = DEFAULT_TEST_TIME):
        if start.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware start time")
        self._current = start

    def now(self) -> datetime:
        return self._current

    def advance(self, **delta: float) -> datetime:
        """Move forward by ``timedelta(**delta)``, one second by default."""
        self._current += timedelta(**delta) if delta else timedelta(seconds=1)
        return self._current

    def set_time(self, moment: datetime) -> None:
        self._current = moment

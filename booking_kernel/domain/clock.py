"""
Clock -- injectable time source.

Tranche ``paid_at`` defaults, commission ``created_at`` and payout
``paid_at`` stamps all come from a Clock passed to the service, so tests
can pin them.  Services never call ``datetime.now()`` themselves.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

DEFAULT_TEST_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """Source of timezone-aware UTC timestamps."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock.

    ``now()`` returns the same value until ``set_time()`` or ``advance()``
    is called.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._time = fixed_time or DEFAULT_TEST_TIME

    def now(self) -> datetime:
        return self._time

    def set_time(self, time: datetime) -> None:
        self._time = time

    def advance(self, seconds: int = 1) -> datetime:
        """Move forward by ``seconds`` and return the new time."""
        self._time += timedelta(seconds=seconds)
        return self._time

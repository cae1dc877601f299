"""
Clock -- Injectable time source.

Responsibility:
    Lets services stamp approvals, receipts, movements and tombstones
    without calling ``datetime.now()`` directly, so tests can pin time and
    move it across the stock-movement lookback window.

Architecture position:
    Kernel > Domain -- pure functional core.  ``SystemClock`` is the one
    sanctioned I/O boundary for time.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Contract:
        Services that need the current time receive a Clock via their
        constructor.  ``now()`` always returns a timezone-aware UTC datetime.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current UTC time."""
        ...

    def today(self) -> date:
        """Current UTC calendar date."""
        return self.now().date()


class SystemClock(Clock):
    """Production clock returning actual system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    ``now()`` returns the same value on repeated calls until ``advance()``
    or ``set_time()`` is called.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime(
            2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc
        )
        self._offset = timedelta(0)

    def now(self) -> datetime:
        return self._fixed_time + self._offset

    def set_time(self, time: datetime) -> None:
        self._fixed_time = time
        self._offset = timedelta(0)

    def advance(self, seconds: int = 0, *, days: int = 0) -> None:
        """Advance the clock by the given seconds and/or days."""
        self._offset += timedelta(seconds=seconds, days=days)

    def tick(self) -> datetime:
        """Advance by 1 second and return new time."""
        self.advance(1)
        return self.now()

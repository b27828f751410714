"""Injectable clock.

Every scheduling decision is a function of entity state and a clock reading.
Jobs receive a Clock instead of calling datetime.now() so that a tick can be
replayed at any instant in tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import UTC, date, datetime, timedelta, tzinfo


class Clock(ABC):
    """Source of the current instant."""

    @abstractmethod
    def now(self) -> datetime:
        """Current instant as a timezone-aware UTC datetime."""
        ...

    def today(self, tz: tzinfo = UTC) -> date:
        """Calendar date of the current instant in the given timezone."""
        return self.now().astimezone(tz).date()


class SystemClock(Clock):
    """Wall clock used by the worker."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class FixedClock(Clock):
    """Clock that only moves when told to.

    Example:
        clock = FixedClock(datetime(2026, 3, 1, 8, tzinfo=UTC))
        clock.advance(days=1)
    """

    def __init__(self, fixed_time: datetime | None = None) -> None:
        if fixed_time is None:
            fixed_time = datetime(2026, 1, 1, 8, 0, tzinfo=UTC)
        self._now = self._normalize(fixed_time)

    def now(self) -> datetime:
        return self._now

    def set(self, new_time: datetime) -> None:
        self._now = self._normalize(new_time)

    def advance(self, **delta: float) -> datetime:
        """Move forward by a timedelta given as keyword arguments."""
        self._now = self._now + timedelta(**delta)
        return self._now

    @staticmethod
    def _normalize(value: datetime) -> datetime:
        if value.tzinfo is None:
            msg = "FixedClock requires a timezone-aware datetime"
            raise ValueError(msg)
        return value.astimezone(UTC)

"""Time sources for context resolvers, trace entries and persistence.

``decide`` stays pure by never reading the time itself: a unit's context
resolver asks its clock and passes the timestamp in the context.  Swap in a
``SimClock`` to make timestamps (and therefore whole event streams)
reproducible.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol

EPOCH_START = datetime(2024, 1, 1, tzinfo=timezone.utc)


class IClock(Protocol):
    def now(self) -> datetime:
        """Current time as timezone-aware UTC datetime."""
        ...

    def now_ms(self) -> int:
        """Current time as milliseconds since epoch."""
        ...


class WallClock:
    """System time, UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def now_ms(self) -> int:
        return int(self.now().timestamp() * 1000)


class SimClock:
    """Manually driven clock.

    Parameters
    ----------
    start:
        Initial time (default 2024-01-01 UTC).  Must be timezone-aware.
    step:
        When set, every ``now()`` call returns the current time and then
        moves the clock forward by *step*, so successive readings are
        strictly increasing without the caller advancing it.
    """

    def __init__(
        self,
        start: datetime | None = None,
        *,
        step: timedelta | None = None,
    ) -> None:
        start = start or EPOCH_START
        if start.tzinfo is None:
            raise ValueError("SimClock start must be timezone-aware")
        if step is not None and step <= timedelta(0):
            raise ValueError(f"step must be positive, got {step}")
        self._time = start
        self._step = step

    def now(self) -> datetime:
        current = self._time
        if self._step is not None:
            self._time = current + self._step
        return current

    def now_ms(self) -> int:
        return int(self._time.timestamp() * 1000)

    def set_time(self, t: datetime) -> None:
        if t < self._time:
            raise ValueError(f"SimClock cannot go backwards: {t} < {self._time}")
        self._time = t

    def advance(self, delta: timedelta) -> datetime:
        """Move forward by *delta* and return the new time."""
        self.set_time(self._time + delta)
        return self._time

    def advance_ms(self, ms: int) -> None:
        self.advance(timedelta(milliseconds=ms))

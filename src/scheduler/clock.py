"""Clock abstraction so pipeline timing can run on virtual time."""

import threading
from datetime import UTC, datetime, timedelta
from typing import Protocol, runtime_checkable

from src.data_model import as_utc


@runtime_checkable
class Clock(Protocol):
    """Source of the current time (aware UTC)."""

    def now(self) -> datetime:
        """Return the current time."""
        ...


class SystemClock:
    """Wall-clock time."""

    def now(self) -> datetime:
        """Return the current UTC time."""
        return datetime.now(UTC)


class VirtualClock:
    """Manually driven clock for tests and replays.

    Time only moves when ``advance`` or ``set`` is called.
    """

    def __init__(self, start: datetime) -> None:
        """Initialize the clock.

        Args:
            start: Initial time (naive values are taken as UTC).
        """
        self._now = as_utc(start)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        """Return the current virtual time."""
        with self._lock:
            return self._now

    def advance(self, delta: timedelta) -> datetime:
        """Move time forward.

        Args:
            delta: Non-negative amount to advance.

        Returns:
            The new current time.

        Raises:
            ValueError: If delta is negative.
        """
        if delta < timedelta(0):
            msg = "VirtualClock cannot move backwards"
            raise ValueError(msg)
        with self._lock:
            self._now += delta
            return self._now

    def set(self, now: datetime) -> None:
        """Jump to an absolute time."""
        with self._lock:
            self._now = as_utc(now)

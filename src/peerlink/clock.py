"""Time sources used for timestamps and liveness checks."""

import time
from abc import ABC, abstractmethod


class Clock(ABC):
    """Source of wall-clock time in whole seconds since the epoch."""

    @abstractmethod
    def now(self) -> int:
        """Returns the current time in seconds."""
        pass


class SystemClock(Clock):
    """Clock backed by the process wall clock."""

    def now(self) -> int:
        return int(time.time())


class ManualClock(Clock):
    """Clock that only moves when told to. Useful for tests and simulations."""

    def __init__(self, start: int = 0) -> None:
        self._now = start

    def now(self) -> int:
        return self._now

    def set(self, timestamp: int) -> None:
        """Jump to an absolute time (may go backwards, like a clock adjustment)."""
        self._now = timestamp

    def advance(self, seconds: int) -> int:
        """Move forward by the given number of seconds and return the new time."""
        self._now += seconds
        return self._now

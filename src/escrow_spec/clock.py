"""Time sources for the window checks."""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    def now(self) -> int:
        """Current time in whole seconds."""
        ...


class SystemClock:
    def now(self) -> int:
        return int(time.time())


class ManualClock:
    """Clock driven by the caller; used by tests and scenario replay."""

    def __init__(self, start: int = 0):
        if start < 0:
            raise ValueError("clock start must be non-negative")
        self._now = int(start)

    def now(self) -> int:
        return self._now

    def set(self, value: int) -> None:
        if value < self._now:
            raise ValueError(f"clock cannot move backwards ({value} < {self._now})")
        self._now = int(value)

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("cannot advance by a negative amount")
        self._now += int(seconds)
        return self._now

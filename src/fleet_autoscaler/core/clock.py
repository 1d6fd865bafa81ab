#!/usr/bin/env python3
"""
Clock abstraction so ticks and cooldowns can run on logical time in tests
"""

import threading
import time


class Clock:
    """Source of 'now' in seconds for the control loop"""

    def now(self) -> float:
        raise NotImplementedError("Subclasses must implement now() method")

    def sleep(self, seconds: float) -> None:
        raise NotImplementedError("Subclasses must implement sleep() method")


class SystemClock(Clock):
    """Wall-clock time in epoch seconds, comparable with metric timestamps"""

    def now(self) -> float:
        return time.time()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


class ManualClock(Clock):
    """
    Logical clock advanced explicitly by the caller

    sleep() advances the clock instead of blocking, so a loop driven by
    this clock simulates hours of operation instantly.
    """

    def __init__(self, start: float = 0.0):
        self._now = float(start)
        self._lock = threading.Lock()

    def now(self) -> float:
        with self._lock:
            return self._now

    def advance(self, seconds: float) -> float:
        if seconds < 0:
            raise ValueError("Cannot move a clock backwards")
        with self._lock:
            self._now += seconds
            return self._now

    def set(self, value: float) -> None:
        with self._lock:
            if value < self._now:
                raise ValueError("Cannot move a clock backwards")
            self._now = float(value)

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            self.advance(seconds)

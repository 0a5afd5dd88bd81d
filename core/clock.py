"""
Core Module - Clock.

============================================================
RESPONSIBILITY
============================================================
Injectable time source for cache expiry, breaker cool-down,
holding-time rules and daily counters.

- UTC only
- Mockable for deterministic tests
- Thread-safe

============================================================
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from typing import Optional
import threading
import time


# ============================================================
# CLOCK PROTOCOL
# ============================================================

class ClockProtocol(ABC):
    """Abstract interface for the engine clock."""

    @abstractmethod
    def now(self) -> datetime:
        """Get current UTC datetime."""
        pass

    @abstractmethod
    def monotonic(self) -> float:
        """Seconds on a clock that never goes backwards."""
        pass

    def today(self) -> date:
        """Get current UTC date."""
        return self.now().date()


# ============================================================
# SYSTEM CLOCK
# ============================================================

class SystemClock(ClockProtocol):
    """Production clock. Wall time in UTC, monotonic for intervals."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def monotonic(self) -> float:
        return time.monotonic()


# ============================================================
# MOCK CLOCK (TESTING)
# ============================================================

class MockClock(ClockProtocol):
    """
    Manually driven clock for tests.

    Wall time and monotonic time advance together.
    """

    def __init__(self, initial_time: Optional[datetime] = None):
        self._time = ensure_utc(initial_time or datetime.now(timezone.utc))
        self._elapsed = 0.0
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._time

    def monotonic(self) -> float:
        with self._lock:
            return self._elapsed

    def set_time(self, new_time: datetime) -> None:
        """Jump wall time; monotonic time moves by the same delta if forward."""
        with self._lock:
            new_time = ensure_utc(new_time)
            delta = (new_time - self._time).total_seconds()
            self._time = new_time
            if delta > 0:
                self._elapsed += delta

    def advance(self, seconds: float = 0, **kwargs) -> None:
        """
        Advance time by the specified amount.

        Args:
            seconds: Number of seconds to advance
            **kwargs: Passed to timedelta (minutes, hours, days)
        """
        delta = timedelta(seconds=seconds, **kwargs)
        with self._lock:
            self._time = self._time + delta
            self._elapsed += delta.total_seconds()


# ============================================================
# UTILITIES
# ============================================================

def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes; convert aware ones to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso8601(dt: datetime) -> str:
    return ensure_utc(dt).isoformat()


__all__ = [
    "ClockProtocol",
    "SystemClock",
    "MockClock",
    "ensure_utc",
    "to_iso8601",
]

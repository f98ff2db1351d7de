"""
Core Module - Pipeline Clock.

============================================================
RESPONSIBILITY
============================================================
Provides the time source used by the schedulers, the update
gate and the publisher.

- Watermark arithmetic (now + interval) reads this clock
- Tests inject MockClock to make "due" decisions deterministic
- Provider query windows (epoch seconds) are derived from it

============================================================
DESIGN PRINCIPLES
============================================================
- UTC only
- Injected, never looked up globally
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
    """Abstract interface for the pipeline clock."""

    @abstractmethod
    def now(self) -> datetime:
        """Get current UTC datetime."""
        pass

    @abstractmethod
    def timestamp(self) -> float:
        """Get current Unix timestamp."""
        pass

    def today(self) -> date:
        """Get current UTC date."""
        return self.now().date()

    def epoch_seconds(self, offset: Optional[timedelta] = None) -> int:
        """
        Get whole epoch seconds, optionally shifted.

        Args:
            offset: Added to the current time before conversion
        """
        moment = self.now()
        if offset is not None:
            moment = moment + offset
        return int(moment.timestamp())


# ============================================================
# SYSTEM CLOCK (PRODUCTION)
# ============================================================

class SystemClock(ClockProtocol):
    """Production clock backed by the system time, in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def timestamp(self) -> float:
        return time.time()


# ============================================================
# MOCK CLOCK (TESTING)
# ============================================================

class MockClock(ClockProtocol):
    """
    Mock clock for testing.

    Time only moves when the test moves it.
    """

    def __init__(self, initial_time: Optional[datetime] = None):
        """
        Initialize mock clock.

        Args:
            initial_time: Starting time (defaults to current UTC)
        """
        self._time = ensure_utc(initial_time or datetime.now(timezone.utc))
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._time

    def timestamp(self) -> float:
        with self._lock:
            return self._time.timestamp()

    def set_time(self, new_time: datetime) -> None:
        """Set the current time."""
        with self._lock:
            self._time = ensure_utc(new_time)

    def advance(self, seconds: float = 0, **kwargs) -> None:
        """
        Advance time by the specified amount.

        Args:
            seconds: Number of seconds to advance
            **kwargs: Passed to timedelta (hours, minutes, days, etc.)
        """
        with self._lock:
            self._time = self._time + timedelta(seconds=seconds, **kwargs)


# ============================================================
# TIMESTAMP UTILITIES
# ============================================================

def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def from_epoch_seconds(value) -> datetime:
    """Convert epoch seconds (int or numeric string) to an aware datetime."""
    return datetime.fromtimestamp(int(float(value)), tz=timezone.utc)


def from_iso8601(iso_string: str) -> datetime:
    """Parse ISO 8601 string (``Z`` suffix allowed) to an aware datetime."""
    dt = datetime.fromisoformat(iso_string.replace("Z", "+00:00"))
    return ensure_utc(dt)


__all__ = [
    "ClockProtocol",
    "SystemClock",
    "MockClock",
    "ensure_utc",
    "from_epoch_seconds",
    "from_iso8601",
]

"""
Core Module - System Clock.

============================================================
RESPONSIBILITY
============================================================
Provides a testable clock abstraction for the portal core.

- Audit timestamps, submission timestamps and attempt times
  all come from an injected clock
- Enables deterministic ordering in tests
- UTC only

============================================================
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Generator, Optional
import threading


# ============================================================
# CLOCK PROTOCOL
# ============================================================

class ClockProtocol(ABC):
    """Abstract interface for system clock."""

    @abstractmethod
    def now(self) -> datetime:
        """Get current UTC datetime."""
        pass

    def format_iso(self, dt: Optional[datetime] = None) -> str:
        """Format datetime as ISO 8601."""
        dt = dt or self.now()
        return dt.isoformat()

    @staticmethod
    def parse_iso(iso_string: str) -> datetime:
        """Parse ISO 8601 string to an aware datetime."""
        parsed = datetime.fromisoformat(iso_string.replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed


# ============================================================
# SYSTEM CLOCK (PRODUCTION)
# ============================================================

class SystemClock(ClockProtocol):
    """Production clock using actual system time."""

    def now(self) -> datetime:
        """Get current UTC datetime."""
        return datetime.now(timezone.utc)


# ============================================================
# MOCK CLOCK (TESTING)
# ============================================================

class MockClock(ClockProtocol):
    """
    Mock clock for testing.

    Allows time manipulation for deterministic tests. With
    ``tick_seconds`` set, every ``now()`` call advances the clock
    so consecutive timestamps are strictly increasing.
    """

    def __init__(
        self,
        initial_time: Optional[datetime] = None,
        tick_seconds: float = 0.0,
    ):
        self._time = initial_time or datetime(2025, 1, 1, tzinfo=timezone.utc)
        if self._time.tzinfo is None:
            self._time = self._time.replace(tzinfo=timezone.utc)
        self._tick = timedelta(seconds=tick_seconds)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        """Get current (mocked) datetime."""
        with self._lock:
            current = self._time
            self._time = self._time + self._tick
            return current

    def set_time(self, new_time: datetime) -> None:
        """Set the current time."""
        with self._lock:
            if new_time.tzinfo is None:
                new_time = new_time.replace(tzinfo=timezone.utc)
            self._time = new_time

    def advance(self, seconds: float = 0, **kwargs) -> None:
        """
        Advance time by the specified amount.

        Args:
            seconds: Number of seconds to advance
            **kwargs: Passed to timedelta (hours, minutes, days, etc.)
        """
        with self._lock:
            self._time = self._time + timedelta(seconds=seconds, **kwargs)

    @contextmanager
    def freeze(self, at_time: Optional[datetime] = None) -> Generator[None, None, None]:
        """Context manager to stop ticking (and optionally jump) for a block."""
        with self._lock:
            original_tick = self._tick
            self._tick = timedelta(0)
            if at_time:
                if at_time.tzinfo is None:
                    at_time = at_time.replace(tzinfo=timezone.utc)
                self._time = at_time

        try:
            yield
        finally:
            with self._lock:
                self._tick = original_tick

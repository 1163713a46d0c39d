"""
Clock implementations.

The writer never calls datetime.now() directly; a clock is injected so
tests can control time.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone


def ensure_utc(ts: datetime) -> datetime:
    """Return ts as an aware UTC datetime (naive values are taken as UTC)."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


class SystemClock:
    """Wall-clock time source (UTC)."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


@dataclass
class ManualClock:
    """
    Controllable time source for tests.

    Unlike the wall clock, time only moves when told to.
    """
    current: datetime = field(
        default_factory=lambda: datetime(2024, 1, 1, tzinfo=timezone.utc)
    )

    def now(self) -> datetime:
        """Get current timestamp without advancing."""
        return ensure_utc(self.current)

    def tick(self, seconds: float = 1.0) -> datetime:
        """Advance clock by seconds and return the new time."""
        self.current = self.current + timedelta(seconds=seconds)
        return self.now()

    def set(self, ts: datetime) -> None:
        self.current = ts

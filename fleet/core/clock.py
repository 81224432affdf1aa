# fleet/core/clock.py

"""
Clock capability.

Services never read the system time directly; they are handed a ``Clock`` so
that "today" is always the business date in the configured timezone and tests
can pin it.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from zoneinfo import ZoneInfo

from fleet.core.config import settings


class Clock(ABC):
    """Source of the current business date and time."""

    @abstractmethod
    def now(self) -> datetime:
        """Current time, timezone-aware."""

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    """Wall clock in the business timezone (Europe/London by default)."""

    def __init__(self, tz_name: str = None):
        self.tz = ZoneInfo(tz_name or settings.business_timezone)

    def now(self) -> datetime:
        return datetime.now(self.tz)


class FixedClock(Clock):
    """Clock pinned to a given instant; advance it explicitly."""

    def __init__(self, at: datetime):
        if at.tzinfo is None:
            at = at.replace(tzinfo=ZoneInfo(settings.business_timezone))
        self._now = at

    def now(self) -> datetime:
        return self._now

    def set(self, at: datetime) -> None:
        if at.tzinfo is None:
            at = at.replace(tzinfo=self._now.tzinfo)
        self._now = at


def get_clock() -> Clock:
    """FastAPI dependency for the business clock."""
    return SystemClock()

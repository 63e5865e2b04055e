"""
Time source for entitlement windows and match timestamps.

Timestamps are stored in UTC. Day and month windows follow the server's
local calendar, the same way the stored ``last_swipe_date`` string is written.
"""

from datetime import date, datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes read back from the database as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Clock:
    """Wall clock used by the services. Tests swap in a fixed instance."""

    def now(self) -> datetime:
        return utcnow()

    def today(self) -> date:
        return date.today()

    def today_key(self) -> str:
        """Server-local calendar day as ``YYYY-MM-DD``."""
        return self.today().isoformat()

    def month_start(self) -> datetime:
        """Start of the current server-local month, expressed in UTC."""
        local_start = datetime.now().astimezone().replace(
            day=1, hour=0, minute=0, second=0, microsecond=0
        )
        return local_start.astimezone(timezone.utc)


class FixedClock(Clock):
    """Clock pinned to a single instant."""

    def __init__(self, now: datetime, today: Optional[date] = None):
        self._now = as_utc(now)
        self._today = today or self._now.date()

    def now(self) -> datetime:
        return self._now

    def today(self) -> date:
        return self._today

    def month_start(self) -> datetime:
        return datetime(self._today.year, self._today.month, 1, tzinfo=timezone.utc)


clock = Clock()

"""
Reference-timezone calendar math.

Every "today", "yesterday" and week boundary is computed in one configured
zone rather than device-local time, so a device crossing midnight in another
zone never re-labels a historical day.
"""
from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo


def ensure_aware(ts: datetime) -> datetime:
    """Naive timestamps coming off the wire are UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


class ReferenceClock:
    def __init__(self, tz_name: str, now_func=None):
        self.tz_name = tz_name
        self.tz = ZoneInfo(tz_name)
        self._now_func = now_func

    def now(self) -> datetime:
        if self._now_func is not None:
            return ensure_aware(self._now_func())
        return datetime.now(timezone.utc)

    def day_of(self, ts: datetime) -> date:
        return ensure_aware(ts).astimezone(self.tz).date()

    def today(self, now: datetime | None = None) -> date:
        return self.day_of(now or self.now())

    def yesterday(self, day: date) -> date:
        return day - timedelta(days=1)

    def day_bounds(self, day: date) -> tuple[datetime, datetime]:
        """Half-open ``[start, end)`` of ``day`` in the reference zone, as UTC instants."""
        start = datetime.combine(day, time.min, tzinfo=self.tz)
        end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=self.tz)
        return start.astimezone(timezone.utc), end.astimezone(timezone.utc)

    def is_on_day(self, ts: datetime | None, day: date) -> bool:
        if ts is None:
            return False
        start, end = self.day_bounds(day)
        return start <= ensure_aware(ts) < end

    def week_start(self, day: date) -> date:
        return day - timedelta(days=day.weekday())

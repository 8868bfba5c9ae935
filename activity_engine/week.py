"""Canonical week boundaries (Sunday 18:00 in the external civil zone)."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from functools import lru_cache
from typing import Optional

from dateutil import tz

from activity_engine.schema import WeekPeriod

DEFAULT_TZ_RULE = "EST5EDT,M3.2.0,M11.1.0"
DEFAULT_BOUNDARY_HOUR = 18


@lru_cache(maxsize=None)
def civil_zone(rule: str = DEFAULT_TZ_RULE) -> tzinfo:
    """Parse a POSIX TZ rule such as ``EST5EDT,M3.2.0,M11.1.0``."""

    zone = tz.tzstr(rule)
    if zone is None:
        raise ValueError(f"invalid timezone rule: {rule!r}")
    return zone


def _aware(instant: datetime) -> datetime:
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant


class WeekBoundaryCalculator:
    def __init__(self, zone: Optional[tzinfo] = None, boundary_hour: int = DEFAULT_BOUNDARY_HOUR) -> None:
        self.zone = zone or civil_zone()
        self.boundary_hour = boundary_hour

    def week_key_for(self, instant: datetime) -> str:
        """Date of the Sunday that opens the week containing ``instant``."""

        local = _aware(instant).astimezone(self.zone)
        days_back = (local.weekday() + 1) % 7
        if days_back == 0 and local.hour < self.boundary_hour:
            days_back = 7
        return (local.date() - timedelta(days=days_back)).isoformat()

    def _civil_instant(self, day: date) -> datetime:
        local = datetime.combine(day, time(self.boundary_hour), tzinfo=self.zone)
        return local.astimezone(timezone.utc)

    def week_bounds(self, week_key: str) -> WeekPeriod:
        # Each bound is resolved from its own civil date so a DST change inside
        # the week moves the end instant by an hour.
        start_day = date.fromisoformat(week_key)
        return WeekPeriod(
            week_key=week_key,
            start=self._civil_instant(start_day),
            end=self._civil_instant(start_day + timedelta(days=7)),
        )

    def current_week(self, now: Optional[datetime] = None) -> WeekPeriod:
        now = now or datetime.now(timezone.utc)
        return self.week_bounds(self.week_key_for(now))

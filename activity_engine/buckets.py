"""Hour/day/week/month windows in civil time and per-bucket aggregation."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional

import numpy as np

from activity_engine.dedup import deduplicate
from activity_engine.metrics import DEFAULT_COST_PER_POINT, aggregate, aggregate_exp
from activity_engine.schema import Event, PeriodSummary
from activity_engine.week import WeekBoundaryCalculator

GRANULARITIES = ("hour", "day", "week", "month")


def _civil_midnight(day: date, zone: tzinfo) -> datetime:
    return datetime.combine(day, time(0), tzinfo=zone).astimezone(timezone.utc)


def _bounds(instant: datetime, granularity: str, zone: tzinfo, calculator: WeekBoundaryCalculator):
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    if granularity == "hour":
        start = instant.astimezone(timezone.utc).replace(minute=0, second=0, microsecond=0)
        return start, start + timedelta(hours=1)
    local_day = instant.astimezone(zone).date()
    if granularity == "day":
        return _civil_midnight(local_day, zone), _civil_midnight(local_day + timedelta(days=1), zone)
    if granularity == "week":
        period = calculator.week_bounds(calculator.week_key_for(instant))
        return period.start, period.end
    if granularity == "month":
        first = local_day.replace(day=1)
        following = (first + timedelta(days=32)).replace(day=1)
        return _civil_midnight(first, zone), _civil_midnight(following, zone)
    raise ValueError(f"unknown period {granularity!r}, expected one of {', '.join(GRANULARITIES)}")


def period_window(
    period: str,
    now: datetime,
    zone: tzinfo,
    calculator: Optional[WeekBoundaryCalculator] = None,
) -> tuple[datetime, datetime]:
    """Half-open UTC window of the current civil hour, day, canonical week or month."""

    return _bounds(now, period, zone, calculator or WeekBoundaryCalculator(zone))


def bucket_start(
    instant: datetime,
    granularity: str,
    zone: tzinfo,
    calculator: Optional[WeekBoundaryCalculator] = None,
) -> datetime:
    return _bounds(instant, granularity, zone, calculator or WeekBoundaryCalculator(zone))[0]


def aggregate_buckets(
    events: list[Event],
    granularity: str,
    zone: tzinfo,
    item_values: Optional[Mapping[str, object]] = None,
    cost_per_point: float = DEFAULT_COST_PER_POINT,
    calculator: Optional[WeekBoundaryCalculator] = None,
) -> dict[datetime, PeriodSummary]:
    """Deduplicate once, then summarize every non-empty bucket in start order."""

    calculator = calculator or WeekBoundaryCalculator(zone)
    grouped: dict[datetime, list[Event]] = {}
    for event in deduplicate(events):
        if event.timestamp is None:
            continue
        start = bucket_start(event.timestamp, granularity, zone, calculator)
        grouped.setdefault(start, []).append(event)
    return {start: aggregate(grouped[start], item_values, cost_per_point) for start in sorted(grouped)}


def hourly_exp_profile(events: list[Event], zone: tzinfo) -> np.ndarray:
    """Exp gained per civil hour of day (index 0-23)."""

    profile = np.zeros(24, dtype=np.int64)
    hours = []
    amounts = []
    for event in deduplicate(events):
        if event.timestamp is None:
            continue
        total, _ = aggregate_exp([event])
        if total > 0:
            hours.append(event.timestamp.astimezone(zone).hour)
            amounts.append(total)
    if hours:
        np.add.at(profile, np.asarray(hours), np.asarray(amounts, dtype=np.int64))
    return profile

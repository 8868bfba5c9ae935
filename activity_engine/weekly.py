"""Per-week summaries persisted alongside the event log."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from activity_engine.adapters.record_codec import format_timestamp
from activity_engine.dedup import deduplicate, sort_key
from activity_engine.drops import is_valid_drop, parse_drop_amount, parse_int
from activity_engine.metrics import aggregate_exp, filter_window
from activity_engine.schema import Event, WeekPeriod, WeekSummary


def _hp_readings(events: list[Event]) -> list[int]:
    readings = []
    for event in sorted(events, key=sort_key):
        value = parse_int(event.hp.replace(",", "")) if event.hp else None
        if value is not None:
            readings.append(value)
    return readings


def compute_week_summary(events: list[Event], period: WeekPeriod, now: Optional[datetime] = None) -> WeekSummary:
    """Summarize the raw log events falling inside ``period``."""

    week_events = filter_window(deduplicate(events), period.start, period.end)
    total_exp, exp_by_skill = aggregate_exp(week_events)

    drops_by_item: dict[str, dict[str, int]] = {}
    total_drops = 0
    for event in week_events:
        for token in event.drops:
            amount, name = parse_drop_amount(token)
            if not is_valid_drop(token, name):
                continue
            entry = drops_by_item.setdefault(name, {"count": 0, "totalAmount": 0})
            entry["count"] += 1
            entry["totalAmount"] += amount
            total_drops += 1

    readings = _hp_readings(week_events)
    hp_used = readings[0] - readings[-1] if len(readings) >= 2 else 0

    return WeekSummary(
        week_key=period.week_key,
        week_start=format_timestamp(period.start),
        week_end=format_timestamp(period.end),
        total_exp=total_exp,
        exp_by_skill=exp_by_skill,
        total_drops=total_drops,
        drops_by_item=drops_by_item,
        hp_used=hp_used,
        total_entries=len(week_events),
        last_updated=format_timestamp(now or datetime.now(timezone.utc)),
    )


def upsert_week_summary(summaries: list[WeekSummary], summary: WeekSummary) -> list[WeekSummary]:
    """Replace the row with the same week key and order newest week first."""

    kept = [existing for existing in summaries if existing.week_key != summary.week_key]
    kept.append(summary)
    return sorted(kept, key=lambda row: row.week_key, reverse=True)


def find_week_summary(summaries: list[WeekSummary], week_key: str) -> Optional[WeekSummary]:
    return next((row for row in summaries if row.week_key == week_key), None)

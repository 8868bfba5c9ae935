from datetime import datetime, timedelta, timezone

from activity_engine.adapters.csv_adapter import (
    WEEK_SUMMARY_HEADER,
    format_week_summaries,
    read_week_summaries,
)
from activity_engine.schema import CombatExpGain, Event, WeekSummary
from activity_engine.week import WeekBoundaryCalculator
from activity_engine.weekly import compute_week_summary, find_week_summary, upsert_week_summary

NOW = datetime(2025, 1, 15, 17, 0, tzinfo=timezone.utc)


def sample_events() -> list[Event]:
    start = datetime(2025, 1, 13, 12, 0, tzinfo=timezone.utc)
    return [
        Event(start, event_id="u1", skill="Attack", gained_exp=100, drops=["2 Bones"], hp="1,200",
              combat_exp=[CombatExpGain("Defence", 30)]),
        Event(start + timedelta(seconds=2), event_id="u1", skill="Attack", gained_exp=0, drops=["1 Gem"]),
        Event(start + timedelta(hours=1), skill="Mining", gained_exp=50, drops=["3 Copper Ore", "50 exp"],
              hp="1,150"),
        Event(start - timedelta(days=3), skill="Mining", gained_exp=999),
    ]


def test_week_summary_uses_canonical_dedup_and_window():
    period = WeekBoundaryCalculator().current_week(NOW)
    summary = compute_week_summary(sample_events(), period, NOW)

    assert summary.week_key == "2025-01-12"
    assert summary.week_start == "2025-01-12T23:00:00.000Z"
    assert summary.total_exp == 180
    assert summary.exp_by_skill == {"Attack": 100, "Defence": 30, "Mining": 50}
    assert summary.total_entries == 2
    assert summary.drops_by_item["Bones"] == {"count": 1, "totalAmount": 2}
    assert summary.drops_by_item["Gem"] == {"count": 1, "totalAmount": 1}
    assert summary.total_drops == 3
    assert summary.hp_used == 50
    assert summary.last_updated == "2025-01-15T17:00:00.000Z"


def test_upsert_replaces_and_orders_newest_first():
    rows = [WeekSummary("2025-01-05", "", ""), WeekSummary("2025-01-12", "", "", total_exp=1)]
    rows = upsert_week_summary(rows, WeekSummary("2025-01-12", "", "", total_exp=5))
    rows = upsert_week_summary(rows, WeekSummary("2024-12-29", "", ""))
    assert [row.week_key for row in rows] == ["2025-01-12", "2025-01-05", "2024-12-29"]
    assert find_week_summary(rows, "2025-01-12").total_exp == 5
    assert find_week_summary(rows, "2020-01-05") is None


def test_week_summary_text_round_trip_with_json_commas():
    summary = WeekSummary(
        week_key="2025-01-12",
        week_start="2025-01-12T23:00:00.000Z",
        week_end="2025-01-19T23:00:00.000Z",
        total_exp=180,
        exp_by_skill={"Attack": 100, "Mining": 80},
        total_drops=3,
        drops_by_item={"Bones": {"count": 2, "totalAmount": 5}, "Gem": {"count": 1, "totalAmount": 1}},
        hp_used=50,
        total_entries=4,
        last_updated="2025-01-15T17:00:00.000Z",
    )
    text = format_week_summaries([summary])
    assert text.splitlines()[0] == WEEK_SUMMARY_HEADER
    assert read_week_summaries(text) == [summary]


def test_reads_legacy_unquoted_json_columns():
    text = (
        WEEK_SUMMARY_HEADER + "\n"
        '2025-01-12,2025-01-12T23:00:00.000Z,2025-01-19T23:00:00.000Z,180,{"Attack":100,"Mining":80},3,'
        '{"Bones":{"count":2,"totalAmount":5}},50,4,2025-01-15T17:00:00.000Z\n'
    )
    [summary] = read_week_summaries(text)
    assert summary.exp_by_skill == {"Attack": 100, "Mining": 80}
    assert summary.drops_by_item == {"Bones": {"count": 2, "totalAmount": 5}}
    assert summary.total_entries == 4

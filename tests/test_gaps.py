from datetime import date, datetime, timedelta, timezone

from activity_engine.gaps import (
    UntrackedLedger,
    build_synthetic_events,
    group_into_gaps,
    hours_spanned,
    initial_rows,
)
from activity_engine.schema import Gap, LootEntry, ResolutionRow, UntrackedRecord
from activity_engine.week import civil_zone

UTC = timezone.utc
ZONE = civil_zone()


def record(record_id, start, end, skill="Mining", exp=100, detected=None) -> UntrackedRecord:
    return UntrackedRecord(
        id=record_id,
        start_utc=start,
        end_utc=end,
        skill=skill,
        exp_gained=exp,
        duration_ms=int((end - start).total_seconds() * 1000),
        detected_at=detected,
    )


def test_overlapping_records_merge_into_one_gap():
    day = datetime(2025, 1, 15, tzinfo=UTC)
    records = [
        record("c", day.replace(hour=11, minute=5), day.replace(hour=11, minute=15), exp=10),
        record("a", day.replace(hour=10), day.replace(hour=10, minute=30), exp=100),
        record("b", day.replace(hour=10, minute=20), day.replace(hour=10, minute=50), skill="Fishing", exp=50),
    ]
    gaps = group_into_gaps(records, UTC)
    assert [gap.record_ids for gap in gaps] == [["a", "b"], ["c"]]
    assert gaps[0].id == "a"
    assert gaps[0].total_exp_by_skill == {"Mining": 100, "Fishing": 50}
    assert gaps[0].end_utc == day.replace(hour=10, minute=50)


def test_touching_records_stay_separate():
    day = datetime(2025, 1, 15, tzinfo=UTC)
    records = [
        record("a", day.replace(hour=10), day.replace(hour=11)),
        record("b", day.replace(hour=11), day.replace(hour=12)),
    ]
    assert len(group_into_gaps(records, UTC)) == 2


def test_grouping_uses_running_max_end():
    day = datetime(2025, 1, 15, tzinfo=UTC)
    records = [
        record("long", day.replace(hour=8), day.replace(hour=12)),
        record("short", day.replace(hour=9), day.replace(hour=9, minute=10)),
        record("late", day.replace(hour=11), day.replace(hour=13)),
    ]
    assert [gap.record_ids for gap in group_into_gaps(records, UTC)] == [["long", "short", "late"]]


def test_hours_wrap_midnight_in_civil_time():
    # 23:10 to 01:20 EST
    start = datetime(2025, 1, 16, 4, 10, tzinfo=UTC)
    end = datetime(2025, 1, 16, 6, 20, tzinfo=UTC)
    assert hours_spanned(start, end, ZONE) == [23, 0, 1]


def test_end_on_the_hour_does_not_claim_that_hour():
    start = datetime(2025, 1, 15, 18, 0, tzinfo=UTC)
    end = datetime(2025, 1, 15, 20, 0, tzinfo=UTC)
    assert hours_spanned(start, end, UTC) == [18, 19]
    assert hours_spanned(start, start, UTC) == [18]


def test_initial_rows_put_remainder_on_last_hour():
    gap = Gap(
        id="a",
        records=[],
        start_utc=datetime(2025, 1, 15, 18, tzinfo=UTC),
        end_utc=datetime(2025, 1, 15, 20, 30, tzinfo=UTC),
        hours_spanned=[18, 19, 20],
        total_exp_by_skill={"Mining": 100, "Fishing": 2},
    )
    rows = initial_rows(gap)
    mining = [row.exp for row in rows if row.skill == "Mining"]
    fishing = [row.exp for row in rows if row.skill == "Fishing"]
    assert mining == [33, 33, 34]
    assert fishing == [0, 0, 2]
    assert [row.hour for row in rows if row.skill == "Mining"] == [18, 19, 20]
    assert all(row.loot == [] for row in rows)
    assert len({row.id for row in rows}) == len(rows)


def test_synthetic_events_skip_empty_rows_and_format_loot():
    rows = [
        ResolutionRow(id="1", hour=18, skill="Mining", exp=40, loot=[LootEntry("Copper Ore", 3)]),
        ResolutionRow(id="2", hour=19, skill="Mining", exp=0),
        ResolutionRow(id="3", hour=20, skill="Mining", exp=0, loot=[LootEntry("Gem", 1)]),
    ]
    events = build_synthetic_events(rows, date(2025, 1, 15), ZONE)
    assert len(events) == 2
    assert events[0].timestamp == datetime(2025, 1, 15, 23, 30, tzinfo=UTC)
    assert events[0].drops == ["3 Copper Ore"]
    assert events[0].gained_exp == 40
    assert events[1].drops == ["1 Gem"]
    assert events[0].event_id and events[0].event_id != events[1].event_id


def test_ledger_skips_overlapping_same_skill_and_prunes_old():
    now = datetime(2025, 6, 1, tzinfo=UTC)
    start = datetime(2025, 5, 31, 10, tzinfo=UTC)
    old = record("old", now - timedelta(days=120), now - timedelta(days=119), detected=now - timedelta(days=119))
    ledger = UntrackedLedger([old])

    assert ledger.add_record(record("a", start, start + timedelta(hours=1), detected=now), now)
    assert not ledger.add_record(record("b", start + timedelta(minutes=30), start + timedelta(hours=2)), now)
    assert ledger.add_record(record("c", start, start + timedelta(hours=1), skill="Fishing"), now)
    assert [r.id for r in ledger.records] == ["a", "c"]


def test_ledger_json_round_trip_and_resolution():
    start = datetime(2025, 5, 31, 10, tzinfo=UTC)
    ledger = UntrackedLedger([record("a", start, start + timedelta(minutes=30), detected=start)])
    restored = UntrackedLedger.from_json(ledger.to_json())
    assert restored.records == ledger.records

    assert restored.mark_resolved(["a", "missing"]) == 1
    assert restored.unresolved() == []
    assert UntrackedLedger.from_json(None).records == []

"""Demo script for activity-engine."""

import json
import sys
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from activity_engine.engine import ActivityEngine
from activity_engine.logging_config import setup_logging
from activity_engine.schema import Candidate, UntrackedRecord
from activity_engine.store import MemoryBlobStore

EXAMPLES = Path(__file__).resolve().parent
NOW = datetime(2025, 3, 3, 17, 0, tzinfo=timezone.utc)


def main() -> None:
    setup_logging()
    store = MemoryBlobStore(
        {
            "tracked_data_csv": (EXAMPLES / "sample_log.csv").read_bytes(),
            "drop_gp_values": (EXAMPLES / "item_values.json").read_bytes(),
        }
    )
    engine = ActivityEngine(store, now=lambda: NOW)

    log = engine.decode_log()
    print("Decoded rows:", len(log.events), "malformed:", log.malformed)
    print("Shapes:", dict(log.shapes))

    for minute, exp in ((0, 5000), (1, 5120)):
        result = engine.append_candidate(
            Candidate(timestamp=NOW + timedelta(minutes=minute), skill="Fishing", cumulative_exp=exp)
        )
        print("Append:", result.appended, result.skipped or result.event.gained_exp)

    summary = engine.query_period("day")
    print("Total exp:", summary.total_exp, summary.exp_by_skill)
    print("Loot:", [(item.name, item.quantity, item.total_value) for item in summary.loot])
    print("Produced:", {name: item.quantity for name, item in summary.produced_items.items()})
    print("Net profit:", summary.net_profit)

    engine.record_untracked(
        UntrackedRecord(
            id="demo-gap",
            start_utc=datetime(2025, 3, 3, 3, 10, tzinfo=timezone.utc),
            end_utc=datetime(2025, 3, 3, 5, 40, tzinfo=timezone.utc),
            skill="Mining",
            exp_gained=901,
            duration_ms=150 * 60 * 1000,
            detected_at=NOW,
        )
    )
    for gap in engine.unresolved_gaps():
        rows = engine.initial_rows(gap)
        print("Gap hours:", gap.hours_spanned, [(row.hour, row.exp) for row in rows])
        engine.resolve_gap(gap.record_ids, rows, date(2025, 3, 2))

    week = engine.update_week_summary()
    print("Week", week.week_key, json.dumps(week.exp_by_skill))


if __name__ == "__main__":
    main()

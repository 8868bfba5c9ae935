"""Print an activity summary for a tracked-data log file."""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from activity_engine.adapters import csv_adapter
from activity_engine.adapters.record_codec import format_timestamp, parse_timestamp
from activity_engine.buckets import period_window
from activity_engine.config import load_config
from activity_engine.logging_config import setup_logging
from activity_engine.metrics import summarize_window
from activity_engine.week import WeekBoundaryCalculator, civil_zone


def _jsonable(value):
    if isinstance(value, datetime):
        return format_timestamp(value)
    raise TypeError(f"cannot serialize {type(value).__name__}")


def _parse_instant(text: str) -> datetime:
    value = parse_timestamp(text)
    if value is None:
        raise ValueError(f"invalid instant: {text!r}")
    return value


def main() -> None:
    parser = argparse.ArgumentParser(description="Summarize an activity-engine log")
    parser.add_argument("--data", required=True, help="Path to the tracked-data CSV log")
    parser.add_argument("--period", choices=["hour", "day", "week", "month"], default="week")
    parser.add_argument("--start", help="Window start (ISO-8601); overrides --period")
    parser.add_argument("--end", help="Window end (ISO-8601), defaults to now")
    parser.add_argument("--now", help="Reference instant for --period (ISO-8601)")
    parser.add_argument("--values", help="JSON file mapping item names to values")
    parser.add_argument("--config", help="JSON configuration file")
    parser.add_argument("--debug", action="store_true")
    args = parser.parse_args()

    setup_logging(args.debug)
    config = load_config(args.config)
    zone = civil_zone(config.tz_rule)

    now = _parse_instant(args.now) if args.now else datetime.now(timezone.utc)
    if args.start:
        start = _parse_instant(args.start)
        end = _parse_instant(args.end) if args.end else now
    else:
        calculator = WeekBoundaryCalculator(zone, config.week_boundary_hour)
        start, end = period_window(args.period, now, zone, calculator)

    item_values = {}
    if args.values:
        item_values = json.loads(Path(args.values).read_text(encoding="utf-8"))

    log = csv_adapter.read_log(Path(args.data).read_text(encoding="utf-8"))
    summary = summarize_window(log.events, start, end, item_values, config.cost_per_point)

    report = asdict(summary)
    report["window"] = [format_timestamp(start), format_timestamp(end)]
    report["rows"] = len(log.events)
    report["malformed_rows"] = log.malformed
    report["shapes"] = dict(log.shapes)
    print(json.dumps(report, indent=2, default=_jsonable))


if __name__ == "__main__":
    main()

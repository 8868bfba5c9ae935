"""CSV adapter for the tracked-data log and the week-summary log."""

from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import dataclass, field

from activity_engine.adapters.csv_fields import iter_records, join_fields, parse_line
from activity_engine.adapters.record_codec import HEADER, decode_with_shape, encode
from activity_engine.drops import non_negative_int
from activity_engine.schema import Event, WeekSummary

logger = logging.getLogger(__name__)

WEEK_SUMMARY_HEADER = (
    "weekKey,weekStart,weekEnd,totalExp,expBySkill,totalDrops,dropsByItem,hpUsed,totalEntries,lastUpdated"
)


@dataclass
class LogReadResult:
    """Decoded events plus a count of rows that could not be decoded."""

    events: list[Event] = field(default_factory=list)
    malformed: int = 0
    shapes: Counter = field(default_factory=Counter)


def _is_header(fields: list[str]) -> bool:
    return bool(fields) and fields[0].strip() == "timestamp"


def read_log(text: str) -> LogReadResult:
    """Decode every record of a log blob, skipping header lines and malformed rows."""

    result = LogReadResult()
    for fields in iter_records(text or ""):
        if _is_header(fields):
            continue
        event, shape = decode_with_shape(fields)
        if event is None:
            result.malformed += 1
            continue
        result.shapes[shape] += 1
        result.events.append(event)
    if result.malformed:
        logger.debug("skipped %d malformed log rows", result.malformed)
    return result


def parse(file_path: str) -> list[Event]:
    """Parse a tracked-data CSV file into events."""

    with open(file_path, newline="", encoding="utf-8") as handle:
        return read_log(handle.read()).events


def format_log(events: list[Event]) -> str:
    """Render a complete log: header plus one canonical record per event."""

    return "\n".join([HEADER, *(join_fields(encode(event)) for event in events)])


def append_to_log(text: str | None, events: list[Event]) -> str:
    """Append canonical records to an existing log blob, leaving its bytes intact."""

    existing = text if text else HEADER
    if not events:
        return existing
    separator = "" if existing.endswith("\n") else "\n"
    return existing + separator + "\n".join(join_fields(encode(event)) for event in events)


def _take_json(parts: list[str]) -> tuple[str, list[str]]:
    for end in range(1, len(parts) + 1):
        candidate = ",".join(parts[:end])
        try:
            json.loads(candidate)
        except ValueError:
            continue
        return candidate, parts[end:]
    return (parts[0] if parts else ""), parts[1:]


def _rejoin_unquoted(fields: list[str]) -> list[str]:
    # Older writers joined the JSON columns without quoting them.
    head, rest = fields[:4], fields[4:]
    exp_json, rest = _take_json(rest)
    total_drops, rest = (rest[0], rest[1:]) if rest else ("0", [])
    drops_json, rest = _take_json(rest)
    return head + [exp_json, total_drops, drops_json] + rest


def _json_object(text: str) -> dict:
    try:
        payload = json.loads(text) if text else {}
    except ValueError:
        logger.debug("unparseable week summary column %r", text[:80])
        return {}
    return payload if isinstance(payload, dict) else {}


def _week_summary_from_line(line: str) -> WeekSummary | None:
    fields = parse_line(line)
    if len(fields) > 10:
        # Quote-aware splitting mangles unquoted JSON, so split the raw text.
        fields = _rejoin_unquoted(line.split(","))
    if len(fields) < 10:
        return None
    drops_by_item = {
        str(name): {
            "count": non_negative_int(stats.get("count")),
            "totalAmount": non_negative_int(stats.get("totalAmount")),
        }
        for name, stats in _json_object(fields[6]).items()
        if isinstance(stats, dict)
    }
    return WeekSummary(
        week_key=fields[0].strip(),
        week_start=fields[1].strip(),
        week_end=fields[2].strip(),
        total_exp=non_negative_int(fields[3]),
        exp_by_skill={str(k): non_negative_int(v) for k, v in _json_object(fields[4]).items()},
        total_drops=non_negative_int(fields[5]),
        drops_by_item=drops_by_item,
        hp_used=non_negative_int(fields[7]),
        total_entries=non_negative_int(fields[8]),
        last_updated=fields[9].strip(),
    )


def read_week_summaries(text: str) -> list[WeekSummary]:
    summaries = []
    for line in (text or "").splitlines():
        if not line.strip() or line.startswith("weekKey"):
            continue
        summary = _week_summary_from_line(line)
        if summary is None:
            logger.debug("skipping week summary row %r", line[:80])
            continue
        summaries.append(summary)
    return summaries


def format_week_summaries(summaries: list[WeekSummary]) -> str:
    lines = [WEEK_SUMMARY_HEADER]
    for summary in summaries:
        lines.append(
            join_fields(
                [
                    summary.week_key,
                    summary.week_start,
                    summary.week_end,
                    str(summary.total_exp),
                    json.dumps(summary.exp_by_skill, separators=(",", ":")),
                    str(summary.total_drops),
                    json.dumps(summary.drops_by_item, separators=(",", ":")),
                    str(summary.hp_used),
                    str(summary.total_entries),
                    summary.last_updated,
                ]
            )
        )
    return "\n".join(lines)

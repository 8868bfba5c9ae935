"""Untracked activity gaps: grouping, proportional backfill and the record ledger."""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Iterable
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Any, Optional

from activity_engine.adapters.record_codec import format_timestamp, parse_timestamp
from activity_engine.drops import non_negative_int
from activity_engine.schema import Event, Gap, LootEntry, ResolutionRow, UntrackedRecord

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 90
RESOLUTION_MINUTE = 30
MAX_GAP_HOURS = 24


def hours_spanned(start: datetime, end: datetime, zone: tzinfo) -> list[int]:
    """Civil hours touched by ``[start, end]``; an end exactly on the hour is excluded."""

    last = end
    if end > start and end.minute == 0 and end.second == 0 and end.microsecond == 0:
        last = end - timedelta(microseconds=1)

    hours: list[int] = []
    step = start.astimezone(timezone.utc).replace(minute=0, second=0, microsecond=0)
    while step <= last and len(hours) < MAX_GAP_HOURS:
        hour = step.astimezone(zone).hour
        if hour not in hours:
            hours.append(hour)
        step += timedelta(hours=1)
    return hours


def _make_gap(records: list[UntrackedRecord], zone: tzinfo) -> Gap:
    start = min(record.start_utc for record in records)
    end = max(record.end_utc for record in records)
    totals: dict[str, int] = {}
    for record in records:
        totals[record.skill] = totals.get(record.skill, 0) + record.exp_gained
    return Gap(
        id=records[0].id,
        records=records,
        start_utc=start,
        end_utc=end,
        hours_spanned=hours_spanned(start, end, zone),
        total_exp_by_skill=totals,
    )


def group_into_gaps(records: Iterable[UntrackedRecord], zone: tzinfo) -> list[Gap]:
    """Merge records whose start falls strictly before the group's latest end."""

    ordered = sorted(records, key=lambda record: record.start_utc)
    if not ordered:
        return []

    gaps: list[Gap] = []
    group = [ordered[0]]
    group_end = ordered[0].end_utc
    for record in ordered[1:]:
        if record.start_utc < group_end:
            group.append(record)
            group_end = max(group_end, record.end_utc)
        else:
            gaps.append(_make_gap(group, zone))
            group = [record]
            group_end = record.end_utc
    gaps.append(_make_gap(group, zone))
    return gaps


def initial_rows(gap: Gap) -> list[ResolutionRow]:
    """Spread each skill's exp evenly over the gap hours, remainder on the last hour."""

    rows: list[ResolutionRow] = []
    hours = gap.hours_spanned
    if not hours:
        return rows
    for skill, total in gap.total_exp_by_skill.items():
        per_hour, remainder = divmod(total, len(hours))
        for index, hour in enumerate(hours):
            exp = per_hour + remainder if index == len(hours) - 1 else per_hour
            rows.append(ResolutionRow(id=str(uuid.uuid4()), hour=hour, skill=skill, exp=exp))
    return rows


def build_synthetic_events(
    rows: Iterable[ResolutionRow],
    reference_date: date,
    zone: tzinfo,
    minute: int = RESOLUTION_MINUTE,
) -> list[Event]:
    """Turn confirmed rows into log events at ``reference_date`` ``hour:minute`` civil time."""

    events = []
    for row in rows:
        if row.exp <= 0 and not row.loot:
            continue
        local = datetime.combine(reference_date, time(row.hour % 24, minute), tzinfo=zone)
        events.append(
            Event(
                timestamp=local.astimezone(timezone.utc),
                event_id=str(uuid.uuid4()),
                skill=row.skill,
                gained_exp=max(0, row.exp),
                drops=[f"{entry.quantity} {entry.name}" for entry in row.loot if entry.name],
            )
        )
    return events


def _record_from_dict(payload: dict[str, Any]) -> Optional[UntrackedRecord]:
    start = parse_timestamp(str(payload.get("startUTC") or ""))
    end = parse_timestamp(str(payload.get("endUTC") or ""))
    if start is None or end is None or not payload.get("id"):
        return None
    detected = parse_timestamp(str(payload.get("detectedAt") or ""))
    before = payload.get("totalExpBefore")
    after = payload.get("totalExpAfter")
    return UntrackedRecord(
        id=str(payload["id"]),
        start_utc=start,
        end_utc=end,
        skill=str(payload.get("skill") or ""),
        exp_gained=non_negative_int(payload.get("expGained")),
        duration_ms=non_negative_int(payload.get("durationMs")),
        resolved=bool(payload.get("resolved", False)),
        detected_at=detected,
        total_exp_before=None if before is None else non_negative_int(before),
        total_exp_after=None if after is None else non_negative_int(after),
    )


def _record_to_dict(record: UntrackedRecord) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": record.id,
        "startUTC": format_timestamp(record.start_utc),
        "endUTC": format_timestamp(record.end_utc),
        "skill": record.skill,
        "expGained": record.exp_gained,
        "durationMs": record.duration_ms,
        "resolved": record.resolved,
    }
    if record.detected_at is not None:
        payload["detectedAt"] = format_timestamp(record.detected_at)
    if record.total_exp_before is not None:
        payload["totalExpBefore"] = record.total_exp_before
    if record.total_exp_after is not None:
        payload["totalExpAfter"] = record.total_exp_after
    return payload


class UntrackedLedger:
    """The persisted list of untracked records."""

    def __init__(self, records: Optional[list[UntrackedRecord]] = None, retention_days: int = DEFAULT_RETENTION_DAYS):
        self.records = list(records or [])
        self.retention = timedelta(days=retention_days)

    @classmethod
    def from_json(cls, text: Optional[str], retention_days: int = DEFAULT_RETENTION_DAYS) -> "UntrackedLedger":
        if not text:
            return cls(retention_days=retention_days)
        payload = json.loads(text)
        if not isinstance(payload, list):
            raise ValueError("untracked records must be a JSON list")
        records = []
        for item in payload:
            record = _record_from_dict(item) if isinstance(item, dict) else None
            if record is None:
                logger.debug("skipping malformed untracked record: %r", item)
                continue
            records.append(record)
        return cls(records, retention_days=retention_days)

    def to_json(self) -> str:
        return json.dumps([_record_to_dict(record) for record in self.records])

    def unresolved(self) -> list[UntrackedRecord]:
        return [record for record in self.records if not record.resolved]

    def add_record(self, record: UntrackedRecord, now: Optional[datetime] = None) -> bool:
        """Store ``record`` unless a same-skill record already overlaps it.

        Records detected longer ago than the retention window are pruned on
        every successful add.
        """

        for existing in self.records:
            if (
                existing.skill == record.skill
                and existing.start_utc < record.end_utc
                and existing.end_utc > record.start_utc
            ):
                logger.debug("untracked %s record overlaps %s, skipped", record.skill, existing.id)
                return False

        now = now or datetime.now(timezone.utc)
        self.records = [
            existing
            for existing in self.records
            if existing.detected_at is None or now - existing.detected_at < self.retention
        ]
        self.records.append(record)
        return True

    def mark_resolved(self, record_ids: Iterable[str]) -> int:
        wanted = set(record_ids)
        marked = 0
        for record in self.records:
            if record.id in wanted and not record.resolved:
                record.resolved = True
                marked += 1
        return marked

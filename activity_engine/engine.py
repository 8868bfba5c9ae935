"""Engine facade: the operations the scraper, scheduler and UI call."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Optional

from activity_engine.adapters.csv_adapter import (
    LogReadResult,
    WEEK_SUMMARY_HEADER,
    append_to_log,
    format_week_summaries,
    read_log,
    read_week_summaries,
)
from activity_engine.adapters.csv_fields import iter_records, join_fields
from activity_engine.adapters.record_codec import HEADER, decode
from activity_engine.buckets import period_window
from activity_engine.config import EngineConfig
from activity_engine.delta import DeltaTracker
from activity_engine.drops import parse_drop_amount
from activity_engine.errors import StoreUnavailable
from activity_engine.gaps import UntrackedLedger, build_synthetic_events, group_into_gaps, initial_rows
from activity_engine.metrics import summarize_window
from activity_engine.schema import Candidate, Event, Gap, PeriodSummary, ResolutionRow, UntrackedRecord, WeekSummary
from activity_engine.store import BlobStore
from activity_engine.week import WeekBoundaryCalculator, civil_zone
from activity_engine.weekly import compute_week_summary, upsert_week_summary

logger = logging.getLogger(__name__)


@dataclass
class AppendResult:
    appended: bool
    event: Optional[Event] = None
    skipped: str = ""
    error: Optional[StoreUnavailable] = None


def _has_identity(event: Event) -> bool:
    return bool(event.skill or event.total_fights or event.combat_exp)


def _has_data(event: Event) -> bool:
    return bool(
        event.gained_exp > 0
        or any(gain.exp > 0 for gain in event.combat_exp)
        or event.drops
        or event.damage_dealt
        or event.damage_received
        or event.equipment
        or (event.location and event.monster)
        or event.total_fights
        or event.action_output
    )


class ActivityEngine:
    """Append, query and reconcile the activity log held in a blob store.

    Mutating calls assume a single writer. Multi-key writes are undone
    key by key when a later write fails, so a failed call can be retried.
    """

    def __init__(
        self,
        store: BlobStore,
        config: Optional[EngineConfig] = None,
        now: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.config = config or EngineConfig()
        self.keys = self.config.storage_keys
        self.zone = civil_zone(self.config.tz_rule)
        self.calculator = WeekBoundaryCalculator(self.zone, self.config.week_boundary_hour)
        self._now = now or (lambda: datetime.now(timezone.utc))

    # -- blob helpers -------------------------------------------------------

    def _decode(self, key: str, blob: Optional[bytes]) -> str:
        if not blob:
            return ""
        try:
            return blob.decode("utf-8")
        except UnicodeDecodeError as exc:
            logger.warning("stored %s is not valid UTF-8, replacing undecodable bytes: %s", key, exc)
            return blob.decode("utf-8", errors="replace")

    def _read_text(self, key: str) -> str:
        return self._decode(key, self.store.get(key))

    def _log_with(self, events: list[Event]) -> bytes:
        """The stored log bytes with ``events`` appended; existing bytes are kept as is."""

        blob = self.store.get(self.keys.events_log)
        existing = self._decode(self.keys.events_log, blob)
        text = append_to_log(existing, events)
        if not blob:
            return text.encode("utf-8")
        return blob + text[len(existing):].encode("utf-8")

    def _read_json(self, key: str, default: Any) -> Any:
        text = self._read_text(key)
        if not text:
            return default
        try:
            return json.loads(text)
        except ValueError:
            logger.warning("stored %s is not valid JSON, ignoring it", key)
            return default

    def _write_all(self, writes: list[tuple[str, bytes]]) -> None:
        """Write several keys; on failure restore the ones already written."""

        previous: list[tuple[str, Optional[bytes]]] = []
        try:
            for key, value in writes:
                before = self.store.get(key)
                self.store.set(key, value)
                previous.append((key, before))
        except StoreUnavailable:
            for key, before in reversed(previous):
                try:
                    self.store.set(key, before if before is not None else b"")
                except StoreUnavailable:
                    logger.error("could not roll back %s", key)
            raise

    # -- log ----------------------------------------------------------------

    def decode_log(self) -> LogReadResult:
        return read_log(self._read_text(self.keys.events_log))

    def events(self) -> list[Event]:
        return self.decode_log().events

    def export_log(self) -> bytes:
        blob = self.store.get(self.keys.events_log)
        return blob if blob is not None else HEADER.encode("utf-8")

    def append_events(self, events: list[Event]) -> int:
        if not events:
            return 0
        self.store.set(self.keys.events_log, self._log_with(events))
        return len(events)

    def item_values(self) -> dict[str, Any]:
        values = self._read_json(self.keys.item_values, {})
        return values if isinstance(values, dict) else {}

    def set_item_values(self, values: dict[str, str]) -> None:
        self.store.set(self.keys.item_values, json.dumps(values).encode("utf-8"))

    def known_items(self) -> list[str]:
        names = set()
        for event in self.events():
            for token in event.drops:
                _, name = parse_drop_amount(token)
                if name:
                    names.add(name)
            names.update(output.item for output in event.action_output if output.item)
        return sorted(names)

    def clear_hour(self, hour: int, day: date) -> int:
        """Remove every record of civil ``hour`` on ``day``; other rows keep their layout."""

        kept = [HEADER]
        removed = 0
        for fields in iter_records(self._read_text(self.keys.events_log)):
            if fields and fields[0].strip() == "timestamp":
                continue
            event = decode(fields)
            if event is not None and event.timestamp is not None:
                local = event.timestamp.astimezone(self.zone)
                if local.date() == day and local.hour == hour:
                    removed += 1
                    continue
            kept.append(join_fields(fields))
        if removed:
            self.store.set(self.keys.events_log, "\n".join(kept).encode("utf-8"))
            logger.info("cleared %d records at %s %02d:00", removed, day.isoformat(), hour)
        return removed

    # -- append -------------------------------------------------------------

    def _tracker(self) -> DeltaTracker:
        baselines = self._read_json(self.keys.baselines, {})
        return DeltaTracker(
            baselines if isinstance(baselines, dict) else {},
            max_gap=self.config.max_gap,
            seed_unknown=self.config.seed_unknown_skills,
        )

    def _to_event(self, candidate: Candidate, tracker: DeltaTracker) -> Event:
        gained = 0
        if candidate.skill and candidate.cumulative_exp > 0:
            gained = tracker.compute_gain(candidate.skill, candidate.cumulative_exp, candidate.timestamp)
        return Event(
            timestamp=candidate.timestamp,
            event_id=candidate.event_id,
            skill=candidate.skill,
            skill_level=candidate.skill_level,
            exp_for_next_level=candidate.exp_for_next_level,
            gained_exp=gained,
            drops=list(candidate.drops),
            hp=candidate.hp,
            monster=candidate.monster,
            location=candidate.location,
            damage_dealt=list(candidate.damage_dealt),
            damage_received=list(candidate.damage_received),
            people_fighting=candidate.people_fighting,
            total_fights=candidate.total_fights,
            total_inventory_hp=candidate.total_inventory_hp,
            hp_used=candidate.hp_used,
            equipment=candidate.equipment,
            combat_exp=DeltaTracker.secondary_gains(candidate.skill, candidate.combat_exp),
            action_type=candidate.action_type,
            action_output=list(candidate.action_output),
        )

    def append_candidate(self, candidate: Candidate) -> AppendResult:
        """Derive gains for one observation and append it; never raises."""

        try:
            tracker = self._tracker()
            event = self._to_event(candidate, tracker)

            skipped = ""
            if not _has_identity(event):
                skipped = "no skill, fight or secondary exp"
            elif not _has_data(event):
                skipped = "nothing to record"

            writes = []
            if not skipped:
                writes.append((self.keys.events_log, self._log_with([event])))
            writes.append((self.keys.baselines, json.dumps(tracker.to_dict()).encode("utf-8")))
            if tracker.untracked:
                ledger = self._ledger()
                for record in tracker.untracked:
                    ledger.add_record(record, self._now())
                writes.append((self.keys.untracked_records, ledger.to_json().encode("utf-8")))
            self._write_all(writes)
        except StoreUnavailable as exc:
            logger.warning("append failed, nothing persisted: %s", exc)
            return AppendResult(appended=False, error=exc)

        if skipped:
            logger.info("skipping candidate at %s: %s", candidate.timestamp, skipped)
            return AppendResult(appended=False, event=event, skipped=skipped)

        if self.config.refresh_week_on_append:
            self._refresh_week_quietly()
        return AppendResult(appended=True, event=event)

    # -- queries ------------------------------------------------------------

    def query_window(self, start: datetime, end: datetime) -> PeriodSummary:
        """Summary of ``[start, end)``; an empty summary when the store is unavailable."""

        try:
            events = self.events()
            item_values = self.item_values()
        except StoreUnavailable as exc:
            logger.warning("query degraded to an empty summary: %s", exc)
            return PeriodSummary()
        return summarize_window(events, start, end, item_values, self.config.cost_per_point)

    def query_period(self, period: str) -> PeriodSummary:
        start, end = period_window(period, self._now(), self.zone, self.calculator)
        return self.query_window(start, end)

    # -- weekly summaries ---------------------------------------------------

    def week_summaries(self) -> list[WeekSummary]:
        return read_week_summaries(self._read_text(self.keys.week_summaries))

    def current_week_summary(self) -> WeekSummary:
        now = self._now()
        return compute_week_summary(self.events(), self.calculator.current_week(now), now)

    def update_week_summary(self) -> WeekSummary:
        summary = self.current_week_summary()
        summaries = upsert_week_summary(self.week_summaries(), summary)
        self.store.set(self.keys.week_summaries, format_week_summaries(summaries).encode("utf-8"))
        return summary

    def reset_week_summaries(self) -> None:
        self.store.set(self.keys.week_summaries, WEEK_SUMMARY_HEADER.encode("utf-8"))

    def _refresh_week_quietly(self) -> None:
        try:
            self.update_week_summary()
        except StoreUnavailable as exc:
            logger.warning("week summary not refreshed: %s", exc)

    # -- untracked gaps -----------------------------------------------------

    def _ledger(self) -> UntrackedLedger:
        try:
            return UntrackedLedger.from_json(
                self._read_text(self.keys.untracked_records), self.config.untracked_retention_days
            )
        except ValueError:
            logger.warning("stored untracked records are unreadable, starting a new ledger")
            return UntrackedLedger(retention_days=self.config.untracked_retention_days)

    def record_untracked(self, record: UntrackedRecord) -> bool:
        ledger = self._ledger()
        if not ledger.add_record(record, self._now()):
            return False
        self.store.set(self.keys.untracked_records, ledger.to_json().encode("utf-8"))
        return True

    def unresolved_gaps(self) -> list[Gap]:
        return group_into_gaps(self._ledger().unresolved(), self.zone)

    def initial_rows(self, gap: Gap) -> list[ResolutionRow]:
        return initial_rows(gap)

    def resolve_gap(self, record_ids: Iterable[str], rows: Iterable[ResolutionRow], reference_date: date) -> list[Event]:
        """Append the backfill and mark the records resolved, or persist neither."""

        events = build_synthetic_events(rows, reference_date, self.zone, self.config.resolution_minute)
        ledger = self._ledger()
        ledger.mark_resolved(record_ids)

        writes = []
        if events:
            writes.append((self.keys.events_log, self._log_with(events)))
        writes.append((self.keys.untracked_records, ledger.to_json().encode("utf-8")))
        self._write_all(writes)

        logger.info("resolved gap with %d synthetic events", len(events))
        if events and self.config.refresh_week_on_append:
            self._refresh_week_quietly()
        return events


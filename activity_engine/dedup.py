"""Collapse repeated observations of one real event."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone

from activity_engine.adapters.record_codec import format_timestamp
from activity_engine.schema import Event

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def canonical_key(event: Event) -> str:
    """``event_id`` + skill when an identifier exists, else timestamp + skill."""

    if event.event_id:
        return f"{event.event_id}-{event.skill}"
    return f"{format_timestamp(event.timestamp)}-{event.skill}"


def sort_key(event: Event) -> datetime:
    return event.timestamp or _EPOCH


def merge(existing: Event, incoming: Event) -> Event:
    """Merge two observations sharing a canonical key.

    The base is the record with strictly more gained exp, or on a tie the
    incoming record when it carries a skill level. Drops and damage lists from
    both are concatenated onto it.
    """

    if incoming.gained_exp > existing.gained_exp or (
        incoming.gained_exp == existing.gained_exp and incoming.skill_level
    ):
        base = incoming
    else:
        base = existing

    return replace(
        base,
        drops=existing.drops + incoming.drops,
        damage_dealt=existing.damage_dealt + incoming.damage_dealt,
        damage_received=existing.damage_received + incoming.damage_received,
        hp=incoming.hp or existing.hp,
        location=incoming.location or existing.location,
        monster=incoming.monster or existing.monster,
    )


def deduplicate(events: list[Event]) -> list[Event]:
    """Return one event per canonical key, merging in ascending timestamp order."""

    merged: dict[str, Event] = {}
    for event in sorted(events, key=sort_key):
        key = canonical_key(event)
        existing = merged.get(key)
        merged[key] = event if existing is None else merge(existing, event)
    return list(merged.values())

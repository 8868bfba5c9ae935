"""Versioned decoding and canonical encoding of tracked-data log records.

The log never carried a version tag, so a row is classified by its field
count and, where two historical layouts share a count, by the content of one
distinguishing column. Each historical layout is one ``Shape``: a pure
predicate plus the canonical column each position maps to. Shapes are tried
newest first; a row matching none of them is mapped positionally.

The canonical shape written by ``encode`` has 20 columns: the 18-column
layout (ending in ``equipment,combatExp``) plus ``actionType`` and
``actionOutput`` for skilling output. Logs written with the 18-column header
still decode; header lines of any width are skipped by the readers.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from dateutil import parser as date_parser

from activity_engine.drops import non_negative_int, parse_drops, parse_int
from activity_engine.schema import CombatExpGain, Event, ProducedOutput

logger = logging.getLogger(__name__)

CANONICAL_COLUMNS = (
    "timestamp",
    "uuid",
    "skill",
    "skillLevel",
    "expForNextLevel",
    "gainedExp",
    "drops",
    "hp",
    "monster",
    "location",
    "damageDealt",
    "damageReceived",
    "peopleFighting",
    "totalFights",
    "totalInventoryHP",
    "hpUsed",
    "equipment",
    "combatExp",
    "actionType",
    "actionOutput",
)
HEADER = ",".join(CANONICAL_COLUMNS)

# Layout used by every identifier-less historical shape, newest first.
_UNIDENTIFIED_COLUMNS = (
    "timestamp",
    "skill",
    "skillLevel",
    "expForNextLevel",
    "gainedExp",
    "drops",
    "hp",
    "monster",
    "location",
    "damageDealt",
    "damageReceived",
    "peopleFighting",
    "totalFights",
    "totalInventoryHP",
    "hpUsed",
)

_BARE_NUMBER = re.compile(r"^[\d,]+$")
_DIGITS = re.compile(r"^\d+$")


@dataclass(frozen=True)
class Shape:
    """One historical row layout: a predicate and its column mapping (None = ignored)."""

    name: str
    matches: Callable[[Sequence[str]], bool]
    columns: tuple[Optional[str], ...]

    def map(self, fields: Sequence[str]) -> dict[str, str]:
        return {column: value for column, value in zip(self.columns, fields) if column}


def _length(count: int) -> Callable[[Sequence[str]], bool]:
    return lambda fields: len(fields) == count


def _is_legacy_gained_11(fields: Sequence[str]) -> bool:
    # Column 7 held gainedExp (a bare number) before it held the monster name.
    return len(fields) == 11 and bool(_BARE_NUMBER.match(fields[7].strip()))


def _is_combat_11(fields: Sequence[str]) -> bool:
    return len(fields) == 11 and not _is_legacy_gained_11(fields)


def _is_hp_7(fields: Sequence[str]) -> bool:
    return len(fields) == 7 and bool(_DIGITS.match(fields[3].replace(",", "").strip()))


SHAPES: tuple[Shape, ...] = (
    Shape("produced-output-20", _length(20), CANONICAL_COLUMNS),
    Shape("combat-exp-18", _length(18), CANONICAL_COLUMNS[:18]),
    Shape("equipment-17", _length(17), CANONICAL_COLUMNS[:17]),
    Shape("identified-16", _length(16), CANONICAL_COLUMNS[:16]),
    Shape("hp-used-15", _length(15), _UNIDENTIFIED_COLUMNS),
    Shape("fights-13", _length(13), _UNIDENTIFIED_COLUMNS[:13]),
    Shape("people-fighting-12", _length(12), _UNIDENTIFIED_COLUMNS[:12]),
    Shape("combat-11", _is_combat_11, _UNIDENTIFIED_COLUMNS[:11]),
    Shape(
        "legacy-gained-11",
        _is_legacy_gained_11,
        ("timestamp", "skill", None, None, None, "skillLevel", "expForNextLevel", "gainedExp", "drops", None, None),
    ),
    Shape(
        "legacy-levels-9",
        _length(9),
        ("timestamp", "skill", None, None, None, "skillLevel", "expForNextLevel", None, None),
    ),
    Shape("hp-7", _is_hp_7, _UNIDENTIFIED_COLUMNS[:7]),
    Shape("legacy-7", _length(7), ("timestamp", "skill", None, None, None, None, None)),
    Shape("basic-6", _length(6), _UNIDENTIFIED_COLUMNS[:6]),
)


def classify(fields: Sequence[str]) -> Optional[Shape]:
    """Return the newest known shape matching the row, or None."""

    for shape in SHAPES:
        if shape.matches(fields):
            return shape
    return None


def _positional_shape(fields: Sequence[str]) -> Shape:
    # Only rows wider than 16 columns ever carried an identifier.
    columns = CANONICAL_COLUMNS if len(fields) > 16 else _UNIDENTIFIED_COLUMNS
    return Shape(f"positional-{len(fields)}", lambda _: True, columns)


def parse_timestamp(text: str) -> Optional[datetime]:
    """Parse an ISO-8601 (or loosely formatted) instant as aware UTC."""

    text = (text or "").strip()
    if not text:
        return None
    try:
        value = date_parser.isoparse(text)
    except (ValueError, OverflowError):
        try:
            value = date_parser.parse(text)
        except (ValueError, OverflowError):
            logger.debug("unparseable timestamp %r", text)
            return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_timestamp(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    timespec = "milliseconds" if value.microsecond % 1000 == 0 else "microseconds"
    return value.isoformat(timespec=timespec).replace("+00:00", "Z")


def _optional_int(text: str) -> Optional[int]:
    if not text or not text.strip():
        return None
    value = parse_int(text)
    if value is None:
        logger.debug("non-numeric value %r read as empty", text)
        return None
    return max(0, value)


def _damage_list(text: str) -> list[int]:
    return [non_negative_int(token) for token in parse_drops(text)]


def _load_json(text: str) -> Any:
    if not text or not text.strip():
        return None
    try:
        return json.loads(text)
    except ValueError:
        logger.debug("unparseable JSON column %r", text[:80])
        return None


def _equipment(text: str) -> Optional[dict[str, Any]]:
    payload = _load_json(text)
    return payload if isinstance(payload, dict) else None


def _combat_exp(text: str) -> list[CombatExpGain]:
    payload = _load_json(text)
    if not isinstance(payload, list):
        return []
    gains = []
    for entry in payload:
        if not isinstance(entry, dict):
            continue
        gains.append(
            CombatExpGain(
                skill=str(entry.get("skill") or "").strip(),
                exp=non_negative_int(entry.get("exp")),
                total_exp=str(entry.get("totalExp") or ""),
                skill_level=str(entry.get("skillLevel") or ""),
                exp_for_next_level=str(entry.get("expForNextLevel") or ""),
            )
        )
    return gains


def _action_output(text: str) -> list[ProducedOutput]:
    payload = _load_json(text)
    if not isinstance(payload, list):
        return []
    return [
        ProducedOutput(item=str(entry.get("item") or "").strip(), quantity=non_negative_int(entry.get("quantity")))
        for entry in payload
        if isinstance(entry, dict)
    ]


def _build_event(values: dict[str, str]) -> Event:
    def text(column: str) -> str:
        return (values.get(column) or "").strip()

    return Event(
        timestamp=parse_timestamp(text("timestamp")),
        event_id=text("uuid"),
        skill=text("skill"),
        skill_level=text("skillLevel"),
        exp_for_next_level=text("expForNextLevel"),
        gained_exp=non_negative_int(text("gainedExp")),
        drops=parse_drops(text("drops")),
        hp=text("hp"),
        monster=text("monster"),
        location=text("location"),
        damage_dealt=_damage_list(text("damageDealt")),
        damage_received=_damage_list(text("damageReceived")),
        people_fighting=_optional_int(text("peopleFighting")),
        total_fights=_optional_int(text("totalFights")),
        total_inventory_hp=_optional_int(text("totalInventoryHP")),
        hp_used=_optional_int(text("hpUsed")),
        equipment=_equipment(text("equipment")),
        combat_exp=_combat_exp(text("combatExp")),
        action_type=text("actionType"),
        action_output=_action_output(text("actionOutput")),
    )


def decode_with_shape(fields: Sequence[str]) -> tuple[Optional[Event], str]:
    """Decode a row and report which layout was used."""

    if len(fields) < 2:
        return None, "too-short"
    shape = classify(fields)
    if shape is None:
        shape = _positional_shape(fields)
        logger.debug("no known layout for %d fields, decoding positionally", len(fields))
    return _build_event(shape.map(fields)), shape.name


def decode(fields: Sequence[str]) -> Optional[Event]:
    """Decode one record of any historical layout; None for rows shorter than two fields."""

    event, _ = decode_with_shape(fields)
    return event


def _optional_text(value: Optional[int]) -> str:
    return "" if value is None else str(value)


def _combat_exp_text(gains: list[CombatExpGain]) -> str:
    if not gains:
        return ""
    payload = []
    for gain in gains:
        entry = {"skill": gain.skill, "exp": str(gain.exp)}
        if gain.total_exp:
            entry["totalExp"] = gain.total_exp
        if gain.skill_level:
            entry["skillLevel"] = gain.skill_level
        if gain.exp_for_next_level:
            entry["expForNextLevel"] = gain.exp_for_next_level
        payload.append(entry)
    return json.dumps(payload, separators=(",", ":"))


def _action_output_text(outputs: list[ProducedOutput]) -> str:
    if not outputs:
        return ""
    return json.dumps([{"item": o.item, "quantity": o.quantity} for o in outputs], separators=(",", ":"))


def encode(event: Event) -> list[str]:
    """Encode an event in the canonical (newest) column layout."""

    return [
        format_timestamp(event.timestamp),
        event.event_id,
        event.skill,
        event.skill_level,
        event.exp_for_next_level,
        str(event.gained_exp),
        ";".join(event.drops),
        event.hp,
        event.monster,
        event.location,
        ";".join(str(v) for v in event.damage_dealt),
        ";".join(str(v) for v in event.damage_received),
        _optional_text(event.people_fighting),
        _optional_text(event.total_fights),
        _optional_text(event.total_inventory_hp),
        _optional_text(event.hp_used),
        "" if event.equipment is None else json.dumps(event.equipment, separators=(",", ":")),
        _combat_exp_text(event.combat_exp),
        event.action_type,
        _action_output_text(event.action_output),
    ]

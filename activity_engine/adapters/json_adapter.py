"""JSON adapter for raw observation candidates."""

from __future__ import annotations

import json
from typing import Any

from activity_engine.adapters.record_codec import parse_timestamp
from activity_engine.drops import non_negative_int, parse_int
from activity_engine.errors import MalformedRecord
from activity_engine.schema import Candidate, CombatExpGain, ProducedOutput


def _optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    parsed = parse_int(value)
    return None if parsed is None else max(0, parsed)


def _int_list(values: Any) -> list[int]:
    if not isinstance(values, list):
        return []
    return [non_negative_int(value) for value in values]


def _combat_exp(values: Any) -> list[CombatExpGain]:
    if not isinstance(values, list):
        return []
    return [
        CombatExpGain(
            skill=str(entry.get("skill") or "").strip(),
            exp=non_negative_int(entry.get("exp")),
            total_exp=str(entry.get("totalExp") or ""),
            skill_level=str(entry.get("skillLevel") or ""),
            exp_for_next_level=str(entry.get("expForNextLevel") or ""),
        )
        for entry in values
        if isinstance(entry, dict)
    ]


def _action_output(values: Any) -> list[ProducedOutput]:
    if not isinstance(values, list):
        return []
    return [
        ProducedOutput(item=str(entry.get("item") or "").strip(), quantity=non_negative_int(entry.get("quantity")))
        for entry in values
        if isinstance(entry, dict) and entry.get("item")
    ]


def parse_item(item: dict, index: int = 1) -> Candidate:
    """Build a candidate from one observation object.

    Accepts the nested screen-data layout (``actionText`` holding the skill,
    cumulative exp, drops and secondary gains) as well as flat keys.
    """

    if not isinstance(item, dict):
        raise MalformedRecord(f"Item {index}: expected an object")

    timestamp = parse_timestamp(str(item.get("timestamp") or ""))
    if timestamp is None:
        raise MalformedRecord(f"Item {index}: malformed timestamp")

    action = item.get("actionText") if isinstance(item.get("actionText"), dict) else {}
    inventory = action.get("inventory") if isinstance(action.get("inventory"), dict) else {}

    drops = action.get("drops", item.get("drops", []))
    if isinstance(drops, str):
        drops = drops.split(";")
    equipment = item.get("equipment")

    return Candidate(
        timestamp=timestamp,
        skill=str(action.get("currentActionText") or item.get("skill") or "").strip(),
        cumulative_exp=non_negative_int(action.get("exp", item.get("exp"))),
        event_id=str(item.get("uuid") or item.get("eventId") or "").strip(),
        skill_level=str(action.get("skillLevel") or item.get("skillLevel") or "").strip(),
        exp_for_next_level=str(action.get("expForNextLevel") or item.get("expForNextLevel") or "").strip(),
        drops=[str(drop).strip() for drop in drops if str(drop).strip()],
        hp=str(inventory.get("hp") or item.get("hp") or "").strip(),
        monster=str(item.get("monster") or "").strip(),
        location=str(item.get("location") or "").strip(),
        damage_dealt=_int_list(item.get("damageDealt")),
        damage_received=_int_list(item.get("damageReceived")),
        people_fighting=_optional_int(item.get("peopleFighting")),
        total_fights=_optional_int(item.get("totalFights")),
        total_inventory_hp=_optional_int(item.get("totalInventoryHP")),
        hp_used=_optional_int(item.get("hpUsed")),
        equipment=equipment if isinstance(equipment, dict) else None,
        combat_exp=_combat_exp(action.get("combatExp", item.get("combatExp"))),
        action_type=str(item.get("actionType") or "").strip(),
        action_output=_action_output(item.get("actionOutput")),
    )


def parse(file_path: str) -> list[Candidate]:
    """Parse a JSON file holding a list of observation objects."""

    with open(file_path, encoding="utf-8") as handle:
        payload = json.load(handle)

    if not isinstance(payload, list):
        raise ValueError("JSON payload must be a list of objects")

    return [parse_item(item, i) for i, item in enumerate(payload, start=1)]

"""Period aggregation of deduplicated events into experience, loot and profit totals."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterator, Mapping
from datetime import datetime, timedelta, timezone
from typing import Optional

from activity_engine.dedup import deduplicate, sort_key
from activity_engine.drops import is_valid_drop, parse_drop_amount, parse_float, parse_int
from activity_engine.running_total import RunningTotalTracker
from activity_engine.schema import DropStat, Event, HpUsage, LootItem, PeriodSummary, ProducedItem

DEFAULT_COST_PER_POINT = 2.5


def _aware(instant: datetime) -> datetime:
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant


def filter_window(events: list[Event], start: datetime, end: datetime) -> list[Event]:
    """Keep events with ``start <= timestamp < end``; naive instants are read as UTC."""

    start, end = _aware(start), _aware(end)
    return [event for event in events if event.timestamp is not None and start <= _aware(event.timestamp) < end]


def _secondary_gains(event: Event) -> Iterator[tuple[str, int]]:
    # The primary skill's own secondary entry is already in gained_exp.
    for gain in event.combat_exp:
        if gain.skill and gain.exp > 0 and gain.skill != event.skill:
            yield gain.skill, gain.exp


def aggregate_exp(events: list[Event]) -> tuple[int, dict[str, int]]:
    """Exp-only aggregation: total exp and exp per skill."""

    total = 0
    by_skill: dict[str, int] = defaultdict(int)
    for event in events:
        if event.gained_exp > 0:
            total += event.gained_exp
            if event.skill:
                by_skill[event.skill] += event.gained_exp
        for skill, exp in _secondary_gains(event):
            total += exp
            by_skill[skill] += exp
    return total, dict(by_skill)


def _round_to_second(value: datetime) -> datetime:
    return (value + timedelta(microseconds=500_000)).replace(microsecond=0)


def _value_of(item_values: Mapping[str, object], name: str) -> float:
    return parse_float(item_values.get(name))  # type: ignore[arg-type]


def _by_value(item) -> tuple[float, str]:
    return (-item.total_value, item.name)


def _hp_usage(events: list[Event]) -> Optional[HpUsage]:
    explicit = [event.hp_used for event in events if event.hp_used is not None]
    readings = [event.total_inventory_hp for event in events if event.total_inventory_hp is not None]
    if explicit:
        start_hp = readings[0] if readings else 0
        end_hp = readings[-1] if readings else 0
        return HpUsage(used=sum(explicit), start_hp=start_hp, end_hp=end_hp)
    if len(readings) >= 2:
        return HpUsage(used=readings[0] - readings[-1], start_hp=readings[0], end_hp=readings[-1])
    return None


def aggregate(
    events: list[Event],
    item_values: Optional[Mapping[str, object]] = None,
    cost_per_point: float = DEFAULT_COST_PER_POINT,
) -> PeriodSummary:
    """Compute the period summary of deduplicated, in-window events."""

    if not events:
        return PeriodSummary()

    item_values = item_values or {}
    ordered = sorted(events, key=sort_key)

    total_exp, exp_by_skill = aggregate_exp(ordered)
    skill_levels: dict[str, int] = {}
    drop_stats: dict[str, DropStat] = {}
    produced = RunningTotalTracker[str]()
    produced_skill: dict[str, str] = {}
    fight_keys: set[tuple[str, datetime]] = set()
    hit_sum: dict[str, int] = defaultdict(int)
    hit_count: dict[str, int] = defaultdict(int)
    total_fights = 0
    total_skilling_actions = 0
    total_damage_dealt = 0
    total_damage_received = 0

    for event in ordered:
        level = parse_int(event.skill_level) or 0
        if event.skill and level > 0:
            skill_levels[event.skill] = max(skill_levels.get(event.skill, 0), level)

        for token in event.drops:
            amount, name = parse_drop_amount(token)
            if not is_valid_drop(token, name):
                continue
            stat = drop_stats.setdefault(name, DropStat())
            stat.count += 1
            stat.total_amount += amount

        if event.total_fights and event.timestamp is not None:
            key = (event.monster or "unknown", _round_to_second(event.timestamp))
            if key not in fight_keys:
                fight_keys.add(key)
                total_fights += 1

        outputs = [output for output in event.action_output if output.item and output.quantity > 0]
        if event.action_type == "skilling" and (event.gained_exp > 0 or outputs):
            total_skilling_actions += 1
        for output in outputs:
            produced.observe(output.item, output.quantity)
            produced_skill.setdefault(output.item, event.skill)

        location = event.location or "unknown"
        for hit in event.damage_dealt:
            if hit > 0:
                total_damage_dealt += hit
                hit_sum[location] += hit
                hit_count[location] += 1
        total_damage_received += sum(hit for hit in event.damage_received if hit > 0)

    loot = sorted(
        (
            LootItem(
                name=name,
                quantity=stat.total_amount,
                value_per_item=_value_of(item_values, name),
                total_value=stat.total_amount * _value_of(item_values, name),
            )
            for name, stat in drop_stats.items()
        ),
        key=_by_value,
    )

    produced_items = []
    for name in produced.keys():
        quantity = produced.increase(name)
        if quantity <= 0:
            continue
        value = _value_of(item_values, name)
        produced_items.append(
            ProducedItem(
                name=name,
                quantity=quantity,
                skill=produced_skill.get(name, ""),
                value_per_item=value,
                total_value=quantity * value,
            )
        )
    produced_items.sort(key=_by_value)

    total_drop_value = sum(item.total_value for item in loot)
    total_produced_value = sum(item.total_value for item in produced_items)
    food_used = total_damage_received * cost_per_point

    timestamps = [event.timestamp for event in ordered if event.timestamp is not None]
    time_range = (timestamps[0], timestamps[-1]) if timestamps else None
    hours = 1 / 60
    if time_range:
        hours = max((time_range[1] - time_range[0]).total_seconds() / 3600.0, 1 / 60)

    return PeriodSummary(
        total_exp=total_exp,
        exp_by_skill=exp_by_skill,
        skill_levels=skill_levels,
        drop_stats=drop_stats,
        loot=loot,
        produced=produced_items,
        total_drop_value=total_drop_value,
        total_produced_value=total_produced_value,
        total_damage_dealt=total_damage_dealt,
        total_damage_received=total_damage_received,
        food_used=food_used,
        hp_used=_hp_usage(ordered),
        net_profit=total_drop_value + total_produced_value - food_used,
        total_fights=total_fights,
        total_skilling_actions=total_skilling_actions,
        average_hit_by_location={
            location: hit_sum[location] / hit_count[location] for location in sorted(hit_sum)
        },
        avg_exp_per_hour=total_exp / hours,
        time_range=time_range,
    )


def summarize_window(
    events: list[Event],
    start: datetime,
    end: datetime,
    item_values: Optional[Mapping[str, object]] = None,
    cost_per_point: float = DEFAULT_COST_PER_POINT,
) -> PeriodSummary:
    """Deduplicate raw log events, restrict them to ``[start, end)`` and aggregate."""

    return aggregate(filter_window(deduplicate(events), start, end), item_values, cost_per_point)

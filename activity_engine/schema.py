"""Core data schema for activity events."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional


@dataclass
class CombatExpGain:
    """Secondary exp gain attributed to the same observation as its event."""

    skill: str
    exp: int
    total_exp: str = ""
    skill_level: str = ""
    exp_for_next_level: str = ""


@dataclass
class ProducedOutput:
    """Running total of one produced item as shown at observation time."""

    item: str
    quantity: int


@dataclass
class Event:
    """Decoded activity observation used by all modules."""

    timestamp: Optional[datetime]
    event_id: str = ""
    skill: str = ""
    skill_level: str = ""
    exp_for_next_level: str = ""
    gained_exp: int = 0
    drops: list[str] = field(default_factory=list)
    hp: str = ""
    monster: str = ""
    location: str = ""
    damage_dealt: list[int] = field(default_factory=list)
    damage_received: list[int] = field(default_factory=list)
    people_fighting: Optional[int] = None
    total_fights: Optional[int] = None
    total_inventory_hp: Optional[int] = None
    hp_used: Optional[int] = None
    equipment: Optional[dict[str, Any]] = None
    combat_exp: list[CombatExpGain] = field(default_factory=list)
    action_type: str = ""
    action_output: list[ProducedOutput] = field(default_factory=list)


@dataclass
class Candidate:
    """Observation handed over by the extraction step, before delta derivation."""

    timestamp: datetime
    skill: str = ""
    cumulative_exp: int = 0
    event_id: str = ""
    skill_level: str = ""
    exp_for_next_level: str = ""
    drops: list[str] = field(default_factory=list)
    hp: str = ""
    monster: str = ""
    location: str = ""
    damage_dealt: list[int] = field(default_factory=list)
    damage_received: list[int] = field(default_factory=list)
    people_fighting: Optional[int] = None
    total_fights: Optional[int] = None
    total_inventory_hp: Optional[int] = None
    hp_used: Optional[int] = None
    equipment: Optional[dict[str, Any]] = None
    combat_exp: list[CombatExpGain] = field(default_factory=list)
    action_type: str = ""
    action_output: list[ProducedOutput] = field(default_factory=list)


@dataclass
class WeekPeriod:
    week_key: str
    start: datetime
    end: datetime


@dataclass
class WeekSummary:
    """Persisted per-week totals, one row per week key."""

    week_key: str
    week_start: str
    week_end: str
    total_exp: int = 0
    exp_by_skill: dict[str, int] = field(default_factory=dict)
    total_drops: int = 0
    drops_by_item: dict[str, dict[str, int]] = field(default_factory=dict)
    hp_used: int = 0
    total_entries: int = 0
    last_updated: str = ""


@dataclass
class UntrackedRecord:
    """Activity the tracker missed, as reported by an external reconciliation."""

    id: str
    start_utc: datetime
    end_utc: datetime
    skill: str
    exp_gained: int
    duration_ms: int
    resolved: bool = False
    detected_at: Optional[datetime] = None
    total_exp_before: Optional[int] = None
    total_exp_after: Optional[int] = None


@dataclass
class Gap:
    """Maximal group of overlapping unresolved records."""

    id: str
    records: list[UntrackedRecord]
    start_utc: datetime
    end_utc: datetime
    hours_spanned: list[int]
    total_exp_by_skill: dict[str, int]

    @property
    def record_ids(self) -> list[str]:
        return [record.id for record in self.records]


@dataclass
class LootEntry:
    name: str
    quantity: int


@dataclass
class ResolutionRow:
    """User-adjustable backfill row for one hour and skill of a gap."""

    id: str
    hour: int
    skill: str
    exp: int
    loot: list[LootEntry] = field(default_factory=list)


@dataclass
class DropStat:
    count: int = 0
    total_amount: int = 0


@dataclass
class LootItem:
    name: str
    quantity: int
    value_per_item: float
    total_value: float


@dataclass
class ProducedItem:
    name: str
    quantity: int
    skill: str
    value_per_item: float
    total_value: float


@dataclass
class HpUsage:
    used: int
    start_hp: int
    end_hp: int


@dataclass
class PeriodSummary:
    """Aggregated statistics for one time window."""

    total_exp: int = 0
    exp_by_skill: dict[str, int] = field(default_factory=dict)
    skill_levels: dict[str, int] = field(default_factory=dict)
    drop_stats: dict[str, DropStat] = field(default_factory=dict)
    loot: list[LootItem] = field(default_factory=list)
    produced: list[ProducedItem] = field(default_factory=list)
    total_drop_value: float = 0.0
    total_produced_value: float = 0.0
    total_damage_dealt: int = 0
    total_damage_received: int = 0
    food_used: float = 0.0
    hp_used: Optional[HpUsage] = None
    net_profit: float = 0.0
    total_fights: int = 0
    total_skilling_actions: int = 0
    average_hit_by_location: dict[str, float] = field(default_factory=dict)
    avg_exp_per_hour: float = 0.0
    time_range: Optional[tuple[datetime, datetime]] = None

    @property
    def produced_items(self) -> dict[str, ProducedItem]:
        return {item.name: item for item in self.produced}

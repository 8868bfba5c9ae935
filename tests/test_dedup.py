from datetime import datetime, timedelta, timezone

from activity_engine.dedup import canonical_key, deduplicate, merge
from activity_engine.schema import Event

T0 = datetime(2025, 3, 3, 15, 6, tzinfo=timezone.utc)


def test_merge_keeps_richer_base_and_all_drops():
    first = Event(T0, event_id="abc", skill="Attack", gained_exp=0, drops=["2 Gold"])
    second = Event(T0, event_id="abc", skill="Attack", gained_exp=40, drops=["1 Rope"])
    merged = merge(first, second)
    assert merged.gained_exp == 40
    assert merged.drops == ["2 Gold", "1 Rope"]


def test_merge_tie_prefers_record_with_level():
    first = Event(T0, skill="Attack", gained_exp=10, damage_dealt=[5], location="Forest")
    second = Event(T0, skill="Attack", gained_exp=10, skill_level="31", damage_dealt=[0, 7])
    merged = merge(first, second)
    assert merged.skill_level == "31"
    assert merged.damage_dealt == [5, 0, 7]
    assert merged.location == "Forest"


def test_canonical_key_prefers_identifier():
    assert canonical_key(Event(T0, event_id="abc", skill="Attack")) == "abc-Attack"
    assert canonical_key(Event(T0, skill="Attack")) == "2025-03-03T15:06:00.000Z-Attack"


def test_deduplicate_one_event_per_key():
    events = [
        Event(T0 + timedelta(seconds=1), event_id="abc", skill="Attack", gained_exp=0, drops=["2 Gold"]),
        Event(T0, event_id="abc", skill="Attack", gained_exp=40, drops=["1 Rope"]),
        Event(T0, event_id="abc", skill="Defence", gained_exp=15),
        Event(T0, skill="Mining", gained_exp=5),
        Event(T0, skill="Mining", gained_exp=5),
    ]
    unique = deduplicate(events)
    assert len(unique) == 3
    attack = next(event for event in unique if event.skill == "Attack")
    assert attack.gained_exp == 40
    assert sorted(attack.drops) == ["1 Rope", "2 Gold"]

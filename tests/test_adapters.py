import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from activity_engine.adapters.csv_adapter import append_to_log, read_log
from activity_engine.adapters.csv_adapter import parse as parse_csv
from activity_engine.adapters.json_adapter import parse as parse_json
from activity_engine.adapters.record_codec import CANONICAL_COLUMNS, HEADER
from activity_engine.errors import MalformedRecord
from activity_engine.schema import Event

SAMPLE_LOG = Path(__file__).resolve().parents[1] / "examples" / "sample_log.csv"


def test_csv_parse_sample_log():
    events = parse_csv(str(SAMPLE_LOG))
    assert len(events) == 10
    assert events[0].skill == "Mining"
    assert events[-1].action_output[0].item == "Bronze Bar"


def test_read_log_counts_shapes_and_malformed_rows():
    result = read_log(SAMPLE_LOG.read_text(encoding="utf-8"))
    assert result.malformed == 1
    assert result.shapes["basic-6"] == 1
    assert result.shapes["legacy-gained-11"] == 1
    assert result.shapes["combat-11"] == 1
    assert result.shapes["identified-16"] == 2
    assert result.shapes["produced-output-20"] == 2


def test_append_to_log_keeps_existing_bytes():
    existing = HEADER + "\r\n2025-01-15T15:00:00Z,Mining,5,100,10,\r\n"
    event = Event(datetime(2025, 1, 15, 16, 0, tzinfo=timezone.utc), skill="Mining", gained_exp=3)
    text = append_to_log(existing, [event])
    assert text.startswith(existing)
    assert len(read_log(text).events) == 2
    assert append_to_log(None, []) == HEADER


def test_json_parse_nested_observation(tmp_path):
    path = tmp_path / "candidates.json"
    payload = [
        {
            "timestamp": "2025-01-15T15:00:00Z",
            "uuid": "abc",
            "actionText": {
                "currentActionText": "Attack",
                "exp": "12,500",
                "drops": ["2 Bones"],
                "inventory": {"hp": "1,200"},
                "combatExp": [{"skill": "Defence", "exp": "40"}],
            },
            "monster": "Goblin",
            "damageDealt": [12, -3],
        },
        {"timestamp": "2025-01-15T15:01:00Z", "skill": "Mining", "exp": 900, "drops": "1 Gem;2 Coal"},
    ]
    path.write_text(json.dumps(payload), encoding="utf-8")
    first, second = parse_json(str(path))
    assert first.skill == "Attack"
    assert first.cumulative_exp == 12500
    assert first.event_id == "abc"
    assert first.hp == "1,200"
    assert first.damage_dealt == [12, 0]
    assert first.combat_exp[0].skill == "Defence"
    assert second.drops == ["1 Gem", "2 Coal"]


def test_json_parse_malformed(tmp_path):
    path = tmp_path / "candidates.json"
    path.write_text(json.dumps([{"skill": "Mining", "timestamp": "bad"}]), encoding="utf-8")
    with pytest.raises(MalformedRecord):
        parse_json(str(path))

    path.write_text(json.dumps({"timestamp": "2025-01-15T15:00:00Z"}), encoding="utf-8")
    with pytest.raises(ValueError):
        parse_json(str(path))


def test_log_with_eighteen_column_header_still_reads():
    header = ",".join(CANONICAL_COLUMNS[:18])
    row = (
        '2025-01-15T15:00:00.000Z,abc,Attack,30,500,120,2 Bones,"1,200",Goblin,Forest,12;15,4,1,1,1200,,,'
        '"[{""skill"":""Defence"",""exp"":""40""}]"'
    )
    text = header + "\n" + row
    result = read_log(text)
    assert result.malformed == 0
    assert result.shapes["combat-exp-18"] == 1
    [event] = result.events
    assert event.event_id == "abc"
    assert event.combat_exp[0].skill == "Defence"

    appended = append_to_log(text, [Event(datetime(2025, 1, 15, 16, 0, tzinfo=timezone.utc), skill="Mining")])
    assert appended.startswith(text)
    assert len(read_log(appended).events) == 2

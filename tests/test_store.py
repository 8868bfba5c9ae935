import json

import pytest

from activity_engine.config import load_config
from activity_engine.errors import StoreUnavailable
from activity_engine.store import DirectoryBlobStore, MemoryBlobStore


def test_directory_store_round_trips_bytes(tmp_path):
    store = DirectoryBlobStore(tmp_path / "blobs")
    payload = "timestamp,uuid\r\né,\"x\"\n".encode("utf-8")
    assert store.get("tracked_data_csv") is None
    store.set("tracked_data_csv", payload)
    assert store.get("tracked_data_csv") == payload
    assert not list((tmp_path / "blobs").glob("*.tmp"))


def test_directory_store_rejects_path_keys(tmp_path):
    with pytest.raises(ValueError):
        DirectoryBlobStore(tmp_path).set("../escape", b"x")


def test_directory_store_wraps_os_errors(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("not a directory", encoding="utf-8")
    store = DirectoryBlobStore(blocker)
    with pytest.raises(StoreUnavailable) as excinfo:
        store.set("tracked_data_csv", b"x")
    assert excinfo.value.key == "tracked_data_csv"


def test_memory_store_copies_values():
    store = MemoryBlobStore()
    store.set("k", bytearray(b"abc"))
    assert store.get("k") == b"abc"
    assert store.get("missing") is None


def test_load_config_merges_file_then_environment(tmp_path):
    path = tmp_path / "engine.json"
    path.write_text(
        json.dumps({"cost_per_point": 3.0, "week_boundary_hour": 17, "storage_keys": {"events_log": "log_v2"}}),
        encoding="utf-8",
    )
    config = load_config(
        str(path),
        environ={
            "ACTIVITY_ENGINE_WEEK_BOUNDARY_HOUR": "19",
            "ACTIVITY_ENGINE_SEED_UNKNOWN_SKILLS": "false",
            "ACTIVITY_ENGINE_KEY_BASELINES": "baselines_v2",
        },
    )
    assert config.cost_per_point == 3.0
    assert config.week_boundary_hour == 19
    assert config.seed_unknown_skills is False
    assert config.storage_keys.events_log == "log_v2"
    assert config.storage_keys.baselines == "baselines_v2"


def test_load_config_defaults_without_file():
    config = load_config(None, environ={})
    assert config.tz_rule == "EST5EDT,M3.2.0,M11.1.0"
    assert config.max_gap.total_seconds() == 300
    assert config.storage_keys.events_log == "tracked_data_csv"

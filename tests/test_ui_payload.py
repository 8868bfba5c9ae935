from datetime import datetime, timezone
from pathlib import Path

from activity_engine.adapters.csv_adapter import read_log
from ui_demo_streamlit.app import run_engine

SAMPLE_LOG = Path(__file__).resolve().parents[1] / "examples" / "sample_log.csv"


def test_run_engine_builds_day_payload():
    log = read_log(SAMPLE_LOG.read_text(encoding="utf-8"))
    result = run_engine(log, "day", datetime(2025, 3, 3, 17, 0, tzinfo=timezone.utc), {"Bones": "10"})

    assert result["window"][0] == datetime(2025, 3, 3, 5, 0, tzinfo=timezone.utc)
    assert result["malformed"] == 1
    assert [row["day"] for row in result["daily"]] == ["2025-03-03"]
    assert result["summary"].total_exp == result["daily"][0]["exp"]
    assert result["summary"].drop_stats["Bones"].total_amount > 0
    assert "09:00" in result["profile"]

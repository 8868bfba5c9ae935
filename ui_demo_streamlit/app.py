"""Streamlit demo UI for activity-engine."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

from activity_engine.adapters import csv_adapter
from activity_engine.buckets import aggregate_buckets, hourly_exp_profile, period_window
from activity_engine.config import load_config
from activity_engine.dedup import deduplicate
from activity_engine.metrics import filter_window, summarize_window
from activity_engine.week import WeekBoundaryCalculator, civil_zone

PERIODS = ["hour", "day", "week", "month"]


def _read_uploaded(uploaded_file) -> csv_adapter.LogReadResult:
    return csv_adapter.read_log(uploaded_file.getvalue().decode("utf-8"))


def _fmt_hour(hour: int) -> str:
    return f"{int(hour):02d}:00"


def run_engine(log: csv_adapter.LogReadResult, period: str, now: datetime, item_values: dict) -> dict[str, Any]:
    """Aggregate the log for the chosen period and return a UI-friendly payload."""

    config = load_config()
    zone = civil_zone(config.tz_rule)
    calculator = WeekBoundaryCalculator(zone, config.week_boundary_hour)
    start, end = period_window(period, now, zone, calculator)
    summary = summarize_window(log.events, start, end, item_values, config.cost_per_point)

    in_window = filter_window(deduplicate(log.events), start, end)
    daily = aggregate_buckets(in_window, "day", zone, item_values, config.cost_per_point, calculator)
    profile = hourly_exp_profile(in_window, zone)

    return {
        "window": (start, end),
        "summary": summary,
        "daily": [{"day": day.astimezone(zone).date().isoformat(), "exp": s.total_exp} for day, s in daily.items()],
        "profile": {_fmt_hour(hour): int(exp) for hour, exp in enumerate(profile) if exp},
        "malformed": log.malformed,
        "shapes": dict(log.shapes),
    }


def main() -> None:
    import streamlit as st

    st.set_page_config(page_title="Activity Engine Demo", layout="wide")
    st.title("Activity Engine: Streamlit Demo")

    with st.sidebar:
        st.header("Controls")
        uploaded = st.file_uploader("Upload tracked-data log", type=["csv"])
        use_demo = st.checkbox("Load demo log", value=True)
        period = st.selectbox("Period", options=PERIODS, index=2)
        reference = st.text_input("Reference instant (ISO-8601)", value="2025-03-03T17:00:00Z")
        values_text = st.text_area("Item values (JSON)", value="{}")
        run = st.button("Summarize", type="primary")

    if not run:
        st.info("Choose a log and period in the sidebar and click **Summarize**.")
        return

    try:
        if use_demo:
            with open("examples/sample_log.csv", encoding="utf-8") as handle:
                log = csv_adapter.read_log(handle.read())
            data_source = "demo log (examples/sample_log.csv)"
        elif uploaded is not None:
            log = _read_uploaded(uploaded)
            data_source = f"uploaded file ({uploaded.name})"
        else:
            st.error("Please upload a CSV log or enable 'Load demo log'.")
            return

        if not log.events:
            st.error("No events were found in the selected input.")
            return

        now = datetime.fromisoformat(reference.replace("Z", "+00:00")) if reference else datetime.now(timezone.utc)
        result = run_engine(log, period, now, json.loads(values_text or "{}"))
        summary = result["summary"]

        st.success(f"Loaded {len(log.events)} events from {data_source} ({result['malformed']} malformed rows).")

        st.subheader("A) Experience")
        c1, c2, c3 = st.columns(3)
        c1.metric("Total exp", summary.total_exp)
        c2.metric("Exp / hour", f"{summary.avg_exp_per_hour:.0f}")
        c3.metric("Fights", summary.total_fights)
        st.table([summary.exp_by_skill] if summary.exp_by_skill else [])

        st.subheader("B) Loot and production")
        st.table([{"item": i.name, "qty": i.quantity, "value": i.total_value} for i in summary.loot])
        st.table([{"item": i.name, "qty": i.quantity, "skill": i.skill} for i in summary.produced])

        st.subheader("C) Profit")
        p1, p2, p3 = st.columns(3)
        p1.metric("Drop value", f"{summary.total_drop_value:.0f}")
        p2.metric("Food used", f"{summary.food_used:.0f}")
        p3.metric("Net profit", f"{summary.net_profit:.0f}")

        st.subheader("D) Activity by hour and day")
        st.bar_chart(result["profile"])
        st.table(result["daily"])

        st.subheader("E) Log shapes")
        st.table([result["shapes"]])

    except ValueError as exc:
        st.error(f"Input error: {exc}")


if __name__ == "__main__":
    main()

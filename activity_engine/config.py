"""Engine configuration: defaults, optional JSON file, environment overrides."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, fields
from datetime import timedelta
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

ENV_PREFIX = "ACTIVITY_ENGINE_"


@dataclass
class StorageKeys:
    events_log: str = "tracked_data_csv"
    week_summaries: str = "weekly_stats_csv"
    baselines: str = "last_exp_by_skill"
    untracked_records: str = "untracked_exp_records"
    item_values: str = "drop_gp_values"


@dataclass
class EngineConfig:
    tz_rule: str = "EST5EDT,M3.2.0,M11.1.0"
    week_boundary_hour: int = 18
    cost_per_point: float = 2.5
    max_gap_seconds: Optional[int] = 300
    seed_unknown_skills: bool = True
    untracked_retention_days: int = 90
    resolution_minute: int = 30
    refresh_week_on_append: bool = True
    storage_keys: StorageKeys = field(default_factory=StorageKeys)

    @property
    def max_gap(self) -> Optional[timedelta]:
        if not self.max_gap_seconds:
            return None
        return timedelta(seconds=self.max_gap_seconds)


def _coerce(current: Any, raw: str) -> Any:
    if isinstance(current, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, float):
        return float(raw)
    if current is None:
        return int(raw) if raw.strip() else None
    return raw


def _merge(config: EngineConfig, values: dict[str, Any]) -> None:
    known = {item.name for item in fields(EngineConfig)}
    for name, value in values.items():
        if name == "storage_keys" and isinstance(value, dict):
            for key, key_value in value.items():
                if hasattr(config.storage_keys, key):
                    setattr(config.storage_keys, key, str(key_value))
        elif name in known:
            setattr(config, name, value)
        else:
            logger.warning("ignoring unknown config option %r", name)


def _override_with_env(config: EngineConfig, environ: dict[str, str]) -> None:
    for item in fields(EngineConfig):
        if item.name == "storage_keys":
            continue
        raw = environ.get(ENV_PREFIX + item.name.upper())
        if raw is not None:
            setattr(config, item.name, _coerce(getattr(config, item.name), raw))
    for item in fields(StorageKeys):
        raw = environ.get(f"{ENV_PREFIX}KEY_{item.name.upper()}")
        if raw:
            setattr(config.storage_keys, item.name, raw)


def load_config(path: Optional[str] = None, environ: Optional[dict[str, str]] = None) -> EngineConfig:
    """Build the configuration from defaults, then ``path`` (JSON), then the environment."""

    config = EngineConfig()
    if path:
        config_file = Path(path)
        if config_file.exists():
            try:
                _merge(config, json.loads(config_file.read_text(encoding="utf-8")))
            except json.JSONDecodeError as exc:
                logger.warning("invalid config file %s, using defaults: %s", config_file, exc)
    _override_with_env(config, dict(os.environ) if environ is None else environ)
    return config

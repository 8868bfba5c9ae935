"""Per-skill exp delta derivation from cumulative exp readings."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from activity_engine.drops import non_negative_int
from activity_engine.running_total import RunningTotalTracker
from activity_engine.schema import CombatExpGain, UntrackedRecord

logger = logging.getLogger(__name__)


def _to_ms(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def _from_ms(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


class DeltaTracker:
    """Turn cumulative per-skill exp into per-event gains.

    Baselines are injected and exported with ``to_dict`` so the caller owns
    persistence. With ``max_gap`` set, a reading that arrives longer than
    ``max_gap`` after the previous one is not credited as a gain; the increase
    is recorded in ``untracked`` instead and the baseline restarts.
    """

    def __init__(
        self,
        baselines: Optional[Mapping[str, Any]] = None,
        max_gap: Optional[timedelta] = None,
        seed_unknown: bool = False,
    ) -> None:
        self._exp: dict[str, int] = {}
        self._seen_at: dict[str, int] = {}
        for skill, value in (baselines or {}).items():
            if isinstance(value, Mapping):
                self._exp[skill] = non_negative_int(value.get("exp"))
                self._seen_at[skill] = non_negative_int(value.get("ts"))
            else:
                # Older persisted form: a bare exp number without a timestamp.
                self._exp[skill] = non_negative_int(value)
                self._seen_at[skill] = 0
        self._totals: RunningTotalTracker[str] = RunningTotalTracker(self._exp)
        self.max_gap = max_gap
        self.seed_unknown = seed_unknown
        self.untracked: list[UntrackedRecord] = []

    @property
    def last_exp_by_skill(self) -> dict[str, int]:
        return dict(self._exp)

    def to_dict(self) -> dict[str, dict[str, int]]:
        return {skill: {"exp": exp, "ts": self._seen_at.get(skill, 0)} for skill, exp in self._exp.items()}

    def compute_gain(self, skill: str, cumulative_exp: int, at: Optional[datetime] = None) -> int:
        """Return max(0, cumulative − last) for ``skill`` and move its baseline."""

        cumulative_exp = max(0, cumulative_exp)
        last = self._exp.get(skill)

        if self.seed_unknown and not last:
            self._exp[skill] = cumulative_exp
            if at is not None:
                self._seen_at[skill] = _to_ms(at)
            return 0

        if at is not None and self.max_gap is not None and last is not None:
            now_ms = _to_ms(at)
            seen_ms = self._seen_at.get(skill, 0)
            if now_ms - seen_ms > self.max_gap.total_seconds() * 1000:
                if seen_ms > 0 and cumulative_exp > last:
                    self._record_untracked(skill, last, cumulative_exp, seen_ms, now_ms)
                self._exp[skill] = cumulative_exp
                self._seen_at[skill] = now_ms
                return 0

        gain = self._totals.observe(skill, cumulative_exp)
        if at is not None:
            self._seen_at[skill] = _to_ms(at)
        return gain

    def _record_untracked(self, skill: str, before: int, after: int, start_ms: int, end_ms: int) -> None:
        logger.info("stale %s baseline: %d exp gained while untracked", skill, after - before)
        self.untracked.append(
            UntrackedRecord(
                id=str(uuid.uuid4()),
                start_utc=_from_ms(start_ms),
                end_utc=_from_ms(end_ms),
                skill=skill,
                exp_gained=after - before,
                duration_ms=end_ms - start_ms,
                detected_at=_from_ms(end_ms),
                total_exp_before=before,
                total_exp_after=after,
            )
        )

    @staticmethod
    def secondary_gains(primary_skill: str, combat_exp: list[CombatExpGain]) -> list[CombatExpGain]:
        """Pass secondary gains through, minus the primary skill's own entry."""

        return [gain for gain in combat_exp if gain.skill != primary_skill]

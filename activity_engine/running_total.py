"""Conversion of cumulative counters into per-observation deltas."""

from __future__ import annotations

from collections.abc import Hashable, MutableMapping
from typing import Generic, Optional, TypeVar

K = TypeVar("K", bound=Hashable)


class RunningTotalTracker(Generic[K]):
    """Track the last seen value of each running total.

    ``observe`` returns the non-negative increase since the previous value and
    moves the baseline to the new value, so a repeated or lower reading yields
    zero. ``increase`` reports the spread (max − min) of the readings this
    tracker saw for a key, which turns a window of running totals into a
    window delta. A key whose readings never rose reports zero.
    """

    def __init__(self, baselines: Optional[MutableMapping[K, int]] = None) -> None:
        self.baselines: MutableMapping[K, int] = baselines if baselines is not None else {}
        self._range: dict[K, tuple[int, int]] = {}
        self._rose: set[K] = set()

    def observe(self, key: K, value: int) -> int:
        previous = self.baselines.get(key, 0)
        delta = max(0, value - previous)
        if key in self._range:
            low, high = self._range[key]
            self._range[key] = (min(low, value), max(high, value))
            if value > previous:
                self._rose.add(key)
        else:
            self._range[key] = (value, value)
        self.baselines[key] = value
        return delta

    def increase(self, key: K) -> int:
        """Max − min of the readings of ``key`` (0 when unseen or never rising)."""

        if key not in self._rose:
            return 0
        low, high = self._range[key]
        return high - low

    def keys(self) -> list[K]:
        return list(self._range)

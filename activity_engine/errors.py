"""Error taxonomy for the activity engine."""

from __future__ import annotations


class ActivityEngineError(Exception):
    """Base class for engine errors."""


class StoreUnavailable(ActivityEngineError):
    """A blob store get/set failed; in-memory state was left unchanged."""

    def __init__(self, key: str, message: str = "store unavailable") -> None:
        super().__init__(f"{message} (key={key!r})")
        self.key = key


class MalformedRecord(ActivityEngineError, ValueError):
    """An input record could not be turned into an event."""

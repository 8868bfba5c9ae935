"""Opaque get/set blob stores used by the engine."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Optional, Protocol

from activity_engine.errors import StoreUnavailable

logger = logging.getLogger(__name__)

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")


class BlobStore(Protocol):
    def get(self, key: str) -> Optional[bytes]:
        ...

    def set(self, key: str, value: bytes) -> None:
        ...


class MemoryBlobStore:
    def __init__(self, initial: Optional[dict[str, bytes]] = None) -> None:
        self.blobs: dict[str, bytes] = dict(initial or {})

    def get(self, key: str) -> Optional[bytes]:
        return self.blobs.get(key)

    def set(self, key: str, value: bytes) -> None:
        self.blobs[key] = bytes(value)


class DirectoryBlobStore:
    """One file per key under ``root``; writes go through a temp file and rename."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise ValueError(f"invalid store key: {key!r}")
        return self.root / key

    def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.error("reading %s failed: %s", path, exc)
            raise StoreUnavailable(key, str(exc)) from exc

    def set(self, key: str, value: bytes) -> None:
        path = self._path(key)
        tmp_path = path.with_name(path.name + ".tmp")
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(value)
            os.replace(tmp_path, path)
        except OSError as exc:
            logger.error("writing %s failed: %s", path, exc)
            raise StoreUnavailable(key, str(exc)) from exc

"""Raw key/value backends behind PersistentStore.

Backends move strings only; (de)serialization and error recovery live in
PersistentStore. Backends raise StorageError subclasses (or whatever their
client library raises) and let the store decide what to do about it.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Protocol, runtime_checkable

import redis

from docuright.errors import QuotaExceeded

logger = logging.getLogger(__name__)

_SAFE_KEY = re.compile(r"[^A-Za-z0-9_.-]")


@runtime_checkable
class StorageBackend(Protocol):
    """Protocol for raw string storage."""

    def read(self, key: str) -> str | None:
        """Return the stored string, or None if the key is absent."""
        ...

    def write(self, key: str, value: str) -> None:
        """Store a string under key, replacing any previous value."""
        ...

    def delete(self, key: str) -> None:
        """Remove key. Absent keys are ignored."""
        ...


class MemoryBackend:
    """In-process dict backend.

    ``quota_bytes`` caps the total stored size so quota failures can be
    exercised without a real browser-style store.
    """

    def __init__(self, quota_bytes: int | None = None):
        self._data: dict[str, str] = {}
        self._quota_bytes = quota_bytes

    def read(self, key: str) -> str | None:
        return self._data.get(key)

    def write(self, key: str, value: str) -> None:
        if self._quota_bytes is not None:
            used = sum(len(v.encode()) for k, v in self._data.items() if k != key)
            if used + len(value.encode()) > self._quota_bytes:
                raise QuotaExceeded(f"Write of {key} exceeds {self._quota_bytes} byte quota")
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __len__(self) -> int:
        return len(self._data)


class FileBackend:
    """One JSON file per key under a directory, written atomically."""

    def __init__(self, directory: str | Path):
        self._dir = Path(directory)
        self._dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self._dir / f"{_SAFE_KEY.sub('_', key)}.json"

    def read(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def write(self, key: str, value: str) -> None:
        path = self._path(key)
        fd, tmp = tempfile.mkstemp(dir=self._dir, prefix=f".{path.stem}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp, path)
        except OSError:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class RedisBackend:
    """Redis-backed storage, for clients that run server-side."""

    PREFIX = "docuright:"

    def __init__(self, redis_url: str = "redis://localhost:6379/0", client: redis.Redis | None = None):
        self._redis = client or redis.from_url(redis_url, decode_responses=True)

    def read(self, key: str) -> str | None:
        return self._redis.get(f"{self.PREFIX}{key}")

    def write(self, key: str, value: str) -> None:
        self._redis.set(f"{self.PREFIX}{key}", value)

    def delete(self, key: str) -> None:
        self._redis.delete(f"{self.PREFIX}{key}")

"""PersistentStore: JSON values over a raw backend, fail-safe in both directions.

Reads never raise: a missing key, a backend failure, malformed JSON or a value
of the wrong shape all come back as the caller's default. Writes never raise
either: a refused write is logged and reported through the return value, so
callers must not assume durability.
"""

from __future__ import annotations

import json
import logging
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from docuright.storage.backends import StorageBackend

logger = logging.getLogger(__name__)

SESSION_KEY = "docuright_session"
USAGE_KEY = "docuright_anonymous_user"

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)


class PersistentStore:
    """Durable key/value persistence with safe (de)serialization."""

    def __init__(self, backend: StorageBackend):
        self._backend = backend

    @property
    def backend(self) -> StorageBackend:
        return self._backend

    def get(self, key: str, default: T) -> Any | T:
        """Return the parsed JSON value for key, or default."""
        try:
            raw = self._backend.read(key)
        except Exception:
            logger.warning("Storage read failed for %s", key, exc_info=True)
            return default
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Discarding corrupt storage entry %s", key)
            return default

    def get_model(self, key: str, model: type[M], default: M | None = None) -> M | None:
        """Return the value for key validated as model, or default on any mismatch."""
        data = self.get(key, None)
        if data is None:
            return default
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.warning("Storage entry %s has unexpected shape (%d errors)", key, e.error_count())
            return default

    def set(self, key: str, value: Any) -> bool:
        """Serialize and write value. Returns False if the write did not land."""
        if isinstance(value, BaseModel):
            value = value.model_dump(mode="json", by_alias=True)
        try:
            raw = json.dumps(value)
        except (TypeError, ValueError):
            logger.error("Value for %s is not JSON serializable", key)
            return False
        try:
            self._backend.write(key, raw)
        except Exception:
            logger.warning("Storage write failed for %s", key, exc_info=True)
            return False
        return True

    def remove(self, key: str) -> None:
        """Delete key. Failures are logged, never raised."""
        try:
            self._backend.delete(key)
        except Exception:
            logger.warning("Storage delete failed for %s", key, exc_info=True)

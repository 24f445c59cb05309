"""Reactive views: fan out state snapshots to subscribed callbacks.

Each core component owns a ViewBroadcaster and publishes an immutable view
dataclass whenever its observable state changes. A failing subscriber is
logged and skipped so it cannot break the component or other subscribers.
"""

from __future__ import annotations

import logging
import uuid
from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar("V")


class ViewBroadcaster(Generic[V]):
    """Fan-out of view snapshots to synchronous callbacks."""

    def __init__(self, name: str):
        self._name = name
        self._subscribers: dict[str, Callable[[V], None]] = {}

    def subscribe(self, callback: Callable[[V], None]) -> str:
        """Register a callback. Returns the subscriber id."""
        sub_id = str(uuid.uuid4())[:8]
        self._subscribers[sub_id] = callback
        logger.debug("%s subscriber added: %s (total: %d)", self._name, sub_id, len(self._subscribers))
        return sub_id

    def unsubscribe(self, sub_id: str) -> None:
        """Remove a subscriber. Unknown ids are ignored."""
        self._subscribers.pop(sub_id, None)

    def publish(self, view: V) -> None:
        for sub_id, callback in list(self._subscribers.items()):
            try:
                callback(view)
            except Exception:
                logger.exception("%s subscriber %s failed", self._name, sub_id)

    def __len__(self) -> int:
        return len(self._subscribers)

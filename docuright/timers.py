"""Owned, cancelable single-shot timers on the running event loop.

Used for the auto-refresh timer and the preview debounce window. Re-arming a
timer cancels the pending shot. Once a shot fires, its callback runs detached
from the timer, so the callback may safely re-arm or cancel the same timer.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class Timer:
    """A single-shot timer whose callback is a coroutine function."""

    def __init__(self, name: str = "timer"):
        self._name = name
        self._pending: asyncio.Task | None = None
        self._running: set[asyncio.Task] = set()
        self._deadline: float | None = None

    @property
    def armed(self) -> bool:
        return self._pending is not None and not self._pending.done()

    @property
    def remaining(self) -> float | None:
        """Seconds until the pending shot fires, or None when disarmed."""
        if not self.armed or self._deadline is None:
            return None
        return max(0.0, self._deadline - asyncio.get_running_loop().time())

    def arm(self, delay: float, callback: Callable[[], Awaitable[None]]) -> None:
        """(Re)start the timer: callback fires after delay seconds unless re-armed first."""
        self.cancel()
        loop = asyncio.get_running_loop()
        self._deadline = loop.time() + max(0.0, delay)
        self._pending = loop.create_task(self._run(delay, callback), name=self._name)

    def cancel(self) -> None:
        """Disarm the pending shot. Callbacks already firing are left to finish."""
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None
        self._deadline = None

    async def _run(self, delay: float, callback: Callable[[], Awaitable[None]]) -> None:
        await asyncio.sleep(max(0.0, delay))
        task = asyncio.current_task()
        if task is not None and self._pending is task:
            self._pending = None
            self._deadline = None
            self._running.add(task)
        try:
            await callback()
        except Exception:
            logger.exception("Timer %s callback failed", self._name)
        finally:
            if task is not None:
                self._running.discard(task)

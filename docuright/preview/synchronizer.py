"""Debounced live-preview synchronizer.

Every form edit calls ``submit``; the fetch only goes out once edits have
quiesced for the debounce window, carrying the latest snapshot. Each fetch is
tagged with a monotonically increasing sequence id and its response is applied
only if no newer fetch (or clear) has been issued since. Older responses that
arrive late are dropped.

Failures never reach the form: the previous preview stays on screen and the
error is logged.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Iterable, Mapping

from docuright.errors import NetworkError
from docuright.events import ViewBroadcaster
from docuright.preview.models import PreviewResult, PreviewSnapshot, PreviewView
from docuright.timers import Timer
from docuright.transport import ApiTransport, ensure_success

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.8
REQUIRED_FIELDS = ("firstPartyName", "secondPartyName", "purposeOfNDA")


def _filled(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


class PreviewSynchronizer:
    """Keeps a preview pane in step with a rapidly edited form."""

    def __init__(
        self,
        transport: ApiTransport,
        document_type: str = "nda",
        *,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        required_fields: Iterable[str] = REQUIRED_FIELDS,
    ):
        self._transport = transport
        self._document_type = document_type
        self._debounce = debounce_seconds
        self._required = tuple(required_fields)

        self._timer = Timer(f"preview-debounce-{document_type}")
        self._latest_fields: dict[str, Any] | None = None
        self._issued_seq = 0
        self._in_flight: set[asyncio.Task] = set()

        self._html = ""
        self._word_count = 0
        self._page_count = 0
        self._applied_seq = 0
        self._is_loading = False
        self._views: ViewBroadcaster[PreviewView] = ViewBroadcaster("preview")

    # ── Observable state ──────────────────────────────────────────────────

    @property
    def view(self) -> PreviewView:
        return PreviewView(
            html=self._html,
            word_count=self._word_count,
            page_count=self._page_count,
            is_loading=self._is_loading,
            sequence_id=self._applied_seq,
        )

    @property
    def issued_sequence(self) -> int:
        return self._issued_seq

    def subscribe(self, callback: Callable[[PreviewView], None]) -> str:
        return self._views.subscribe(callback)

    def unsubscribe(self, sub_id: str) -> None:
        self._views.unsubscribe(sub_id)

    def _publish(self) -> None:
        self._views.publish(self.view)

    # ── Input ─────────────────────────────────────────────────────────────

    def is_ready(self, fields: Mapping[str, Any]) -> bool:
        return all(_filled(fields.get(name)) for name in self._required)

    def submit(self, fields: Mapping[str, Any]) -> None:
        """Record the latest form state and restart the debounce window."""
        self._latest_fields = dict(fields)
        self._timer.arm(self._debounce, self._fire)

    async def flush(self) -> None:
        """Fire now for the latest snapshot instead of waiting out the window."""
        self._timer.cancel()
        if self._latest_fields is not None:
            await self._fire()

    async def wait_idle(self) -> None:
        """Wait until no debounce window is open and no fetch is pending."""
        while self._timer.armed or self._in_flight:
            if self._in_flight:
                await asyncio.gather(*list(self._in_flight), return_exceptions=True)
            else:
                await asyncio.sleep(self._timer.remaining or 0)

    async def aclose(self) -> None:
        """Close the window and ignore whatever is still in flight."""
        self._timer.cancel()
        self._issued_seq += 1
        if self._is_loading:
            self._is_loading = False
            self._publish()

    # ── Firing ────────────────────────────────────────────────────────────

    async def _fire(self) -> None:
        fields = self._latest_fields or {}
        self._issued_seq += 1

        if not self.is_ready(fields):
            # Supersedes any in-flight fetch so it cannot repaint the pane
            self._html = ""
            self._word_count = 0
            self._page_count = 0
            self._applied_seq = self._issued_seq
            self._is_loading = False
            self._publish()
            logger.debug("Preview cleared: required fields missing")
            return

        snapshot = PreviewSnapshot(sequence_id=self._issued_seq, fields=dict(fields))
        self._is_loading = True
        self._publish()
        task = asyncio.get_running_loop().create_task(
            self._fetch(snapshot), name=f"preview-fetch-{snapshot.sequence_id}"
        )
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _fetch(self, snapshot: PreviewSnapshot) -> None:
        path = f"/preview/{self._document_type}"
        try:
            response = await self._transport.request("POST", path, json=snapshot.fields)
            ensure_success(response, "Preview failed")
            result = PreviewResult.model_validate(response.json())
        except (NetworkError, ValueError) as e:
            logger.warning(
                "Preview %d failed (%s); keeping previous output",
                snapshot.sequence_id,
                type(e).__name__,
            )
            if snapshot.sequence_id == self._issued_seq:
                self._is_loading = False
                self._publish()
            return

        if snapshot.sequence_id != self._issued_seq:
            logger.debug(
                "Discarding stale preview %d (latest issued %d)",
                snapshot.sequence_id,
                self._issued_seq,
            )
            return

        self._html = result.html_content
        self._word_count = result.word_count
        self._page_count = result.page_count
        self._applied_seq = snapshot.sequence_id
        self._is_loading = False
        self._publish()

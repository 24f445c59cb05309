"""Anonymous usage meter and progressive registration funnel.

Counts document generations made before registration and derives which
prompt to surface: a banner after the first, a modal after the second and a
hard gate once the free allowance is used up. The ledger is re-read from the
store on every query, so the store stays the single source of truth.
"""

from __future__ import annotations

import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from docuright.events import ViewBroadcaster
from docuright.storage.store import USAGE_KEY, PersistentStore
from docuright.usage.models import Generation, PromptType, UsageRecord, UsageView
from docuright.usage.sanitizer import sanitize_form_data

logger = logging.getLogger(__name__)

MAX_FREE_GENERATIONS = 3

_SEEN_FLAGS = {
    PromptType.BANNER: "has_seen_banner",
    PromptType.MODAL: "has_seen_modal",
}


def _now_ms() -> int:
    return int(time.time() * 1000)


def prompt_for(record: UsageRecord, max_free: int = MAX_FREE_GENERATIONS) -> PromptType:
    """Pure funnel decision for a ledger state."""
    count = record.generation_count
    if count >= max_free:
        return PromptType.GATE
    if count == 0:
        return PromptType.NONE
    if count == 1 and not record.has_seen_banner:
        return PromptType.BANNER
    if count == 2 and not record.has_seen_modal:
        return PromptType.MODAL
    return PromptType.NONE


class UsageMeter:
    """Tracks anonymous generations and drives the registration funnel."""

    def __init__(self, store: PersistentStore, max_free_generations: int = MAX_FREE_GENERATIONS):
        self._store = store
        self._max_free = max_free_generations
        self._views: ViewBroadcaster[UsageView] = ViewBroadcaster("usage")

    @property
    def max_free_generations(self) -> int:
        return self._max_free

    def record(self) -> UsageRecord:
        """Current ledger; an empty one if nothing valid is stored."""
        return self._store.get_model(USAGE_KEY, UsageRecord, None) or UsageRecord()

    def _save(self, record: UsageRecord) -> None:
        self._store.set(USAGE_KEY, record)
        self._views.publish(self._view_of(record))

    # ── Ledger mutations ──────────────────────────────────────────────────

    def record_generation(self, document_type: str, fields: Mapping[str, Any]) -> Generation:
        """Append a sanitized generation and bump the count."""
        now = _now_ms()
        generation = Generation(
            id=f"doc_{now}_{uuid.uuid4().hex[:9]}",
            document_type=document_type,
            timestamp=now,
            form_data=sanitize_form_data(fields, document_type),
        )
        record = self.record()
        record.generations.append(generation)
        record.generation_count = len(record.generations)
        self._save(record)
        logger.info(
            "Anonymous generation %d/%d recorded (%s)",
            record.generation_count,
            self._max_free,
            document_type,
        )
        return generation

    def mark_prompt_seen(self, kind: PromptType | str) -> None:
        """Remember that the banner or modal was shown. Idempotent."""
        prompt = PromptType(kind)
        flag = _SEEN_FLAGS.get(prompt)
        if flag is None:
            raise ValueError(f"Only banner and modal prompts can be marked seen, not {prompt.value}")
        record = self.record()
        if getattr(record, flag) and record.last_prompt_shown == prompt.value:
            return
        setattr(record, flag, True)
        record.last_prompt_shown = prompt.value
        self._save(record)

    def reset(self) -> None:
        """Drop the whole ledger in one storage operation."""
        self._store.remove(USAGE_KEY)
        self._views.publish(self._view_of(UsageRecord()))
        logger.info("Anonymous usage ledger cleared")

    # ── Queries ───────────────────────────────────────────────────────────

    def current_prompt_type(self) -> PromptType:
        return prompt_for(self.record(), self._max_free)

    def remaining(self) -> int:
        return max(0, self._max_free - self.record().generation_count)

    def has_reached_limit(self) -> bool:
        return self.record().generation_count >= self._max_free

    def stored_documents(self) -> list[Generation]:
        return list(self.record().generations)

    def anonymous_session_id(self) -> str | None:
        """Opaque identifier sent on registration when anonymous work exists."""
        if not self.record().generations:
            return None
        return f"session_{_now_ms()}_{uuid.uuid4().hex[:8]}"

    def usage_stats(self) -> dict[str, Any]:
        record = self.record()
        return {
            "totalGenerations": record.generation_count,
            "remainingFree": max(0, self._max_free - record.generation_count),
            "documents": [
                {
                    "type": g.document_type,
                    "date": datetime.fromtimestamp(g.timestamp / 1000, tz=timezone.utc).date().isoformat(),
                }
                for g in record.generations
            ],
            "hasReachedLimit": record.generation_count >= self._max_free,
        }

    # ── Reactive view ─────────────────────────────────────────────────────

    def _view_of(self, record: UsageRecord) -> UsageView:
        return UsageView(
            generation_count=record.generation_count,
            remaining=max(0, self._max_free - record.generation_count),
            prompt_type=prompt_for(record, self._max_free),
            has_reached_limit=record.generation_count >= self._max_free,
        )

    @property
    def view(self) -> UsageView:
        return self._view_of(self.record())

    def subscribe(self, callback: Callable[[UsageView], None]) -> str:
        return self._views.subscribe(callback)

    def unsubscribe(self, sub_id: str) -> None:
        self._views.unsubscribe(sub_id)

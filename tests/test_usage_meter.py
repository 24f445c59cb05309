"""Tests for the anonymous usage meter and registration funnel.

Tests:
- remaining() over any number of generations
- Funnel: banner after one, modal after two, gate from the limit on
- Prompt flags, reset, stats
- Sanitization of stored form data
- Recovery from a tampered ledger
"""

from __future__ import annotations

import pytest
from freezegun import freeze_time
from hypothesis import given, settings
from hypothesis import strategies as st

from docuright.storage.backends import MemoryBackend
from docuright.storage.store import USAGE_KEY, PersistentStore
from docuright.usage.meter import MAX_FREE_GENERATIONS, UsageMeter, prompt_for
from docuright.usage.models import PromptType, UsageRecord
from docuright.usage.sanitizer import ALLOWED_FIELDS, sanitize_form_data

NDA_FIELDS = {
    "documentType": "nda",
    "firstPartyName": "Acme Corp",
    "secondPartyName": "Globex Ltd",
    "effectiveDate": "2026-10-01",
    "purposeOfNDA": "Evaluate a partnership",
    "useAIEnhancements": True,
    "firstPartyAddress": "1 Main Street, Springfield",
    "firstPartyRepresentative": "Jane Roe",
}


def fresh_meter() -> UsageMeter:
    return UsageMeter(PersistentStore(MemoryBackend()))


# ── Counting ──────────────────────────────────────────────────────────────


class TestCounting:
    """generationCount tracks the append-only history."""

    @given(st.integers(min_value=0, max_value=8))
    @settings(max_examples=30)
    def test_remaining_for_any_number_of_generations(self, n):
        meter = fresh_meter()
        for _ in range(n):
            meter.record_generation("nda", NDA_FIELDS)
        assert meter.remaining() == max(0, 3 - n)
        record = meter.record()
        assert record.generation_count == n == len(record.generations)

    def test_generation_ids_unique(self, meter):
        ids = {meter.record_generation("nda", NDA_FIELDS).id for _ in range(5)}
        assert len(ids) == 5

    def test_history_is_ordered(self, meter):
        meter.record_generation("nda", NDA_FIELDS)
        meter.record_generation("offer-letter", {"firstPartyName": "Initech"})
        assert [g.document_type for g in meter.stored_documents()] == ["nda", "offer-letter"]

    @freeze_time("2026-10-19 12:00:00")
    def test_timestamp_in_epoch_ms(self, meter):
        generation = meter.record_generation("nda", NDA_FIELDS)
        assert generation.timestamp == 1792411200000
        assert generation.id.startswith("doc_1792411200000_")

    def test_has_reached_limit(self, meter):
        for _ in range(MAX_FREE_GENERATIONS - 1):
            meter.record_generation("nda", NDA_FIELDS)
        assert not meter.has_reached_limit()
        meter.record_generation("nda", NDA_FIELDS)
        assert meter.has_reached_limit()

    def test_custom_limit(self):
        meter = UsageMeter(PersistentStore(MemoryBackend()), max_free_generations=1)
        meter.record_generation("nda", NDA_FIELDS)
        assert meter.remaining() == 0
        assert meter.current_prompt_type() == PromptType.GATE


# ── Funnel ────────────────────────────────────────────────────────────────


class TestFunnel:
    """Prompt derivation from count and flags."""

    def test_no_generations_no_prompt(self, meter):
        assert meter.current_prompt_type() == PromptType.NONE

    def test_banner_after_first_then_none_once_seen(self, meter):
        meter.record_generation("nda", NDA_FIELDS)
        assert meter.current_prompt_type() == PromptType.BANNER
        meter.mark_prompt_seen("banner")
        assert meter.current_prompt_type() == PromptType.NONE

    def test_modal_at_two_when_not_seen(self, meter):
        meter.record_generation("nda", NDA_FIELDS)
        meter.record_generation("nda", NDA_FIELDS)
        assert meter.current_prompt_type() == PromptType.MODAL
        meter.mark_prompt_seen(PromptType.MODAL)
        assert meter.current_prompt_type() == PromptType.NONE

    def test_modal_shown_even_if_banner_was_skipped(self, meter):
        meter.record_generation("nda", NDA_FIELDS)
        meter.record_generation("nda", NDA_FIELDS)
        assert not meter.record().has_seen_banner
        assert meter.current_prompt_type() == PromptType.MODAL

    def test_gate_at_limit_with_no_flags(self, meter):
        for _ in range(3):
            meter.record_generation("nda", NDA_FIELDS)
        record = meter.record()
        assert not record.has_seen_banner and not record.has_seen_modal
        assert meter.current_prompt_type() == PromptType.GATE

    @given(
        extra=st.integers(min_value=0, max_value=20),
        banner=st.booleans(),
        modal=st.booleans(),
    )
    def test_gate_is_sticky(self, extra, banner, modal):
        generations = [
            {"id": f"doc_{i}", "documentType": "nda", "timestamp": i, "formData": {}}
            for i in range(3 + extra)
        ]
        record = UsageRecord.model_validate({
            "generationCount": len(generations),
            "generations": generations,
            "hasSeenBanner": banner,
            "hasSeenModal": modal,
        })
        assert prompt_for(record) == PromptType.GATE

    def test_mark_seen_is_idempotent(self, meter, storage):
        meter.record_generation("nda", NDA_FIELDS)
        meter.mark_prompt_seen("banner")
        before = storage.read(USAGE_KEY)
        meter.mark_prompt_seen("banner")
        assert storage.read(USAGE_KEY) == before
        assert meter.record().generation_count == 1

    def test_mark_seen_records_last_prompt(self, meter):
        meter.mark_prompt_seen("modal")
        assert meter.record().last_prompt_shown == "modal"
        assert meter.record().generation_count == 0

    @pytest.mark.parametrize("kind", ["gate", "none", "popup"])
    def test_mark_seen_rejects_other_kinds(self, meter, kind):
        with pytest.raises(ValueError):
            meter.mark_prompt_seen(kind)


# ── Reset and stats ───────────────────────────────────────────────────────


class TestReset:

    @given(n=st.integers(min_value=0, max_value=6), banner=st.booleans(), modal=st.booleans())
    @settings(max_examples=30)
    def test_reset_clears_everything(self, n, banner, modal):
        meter = fresh_meter()
        for _ in range(n):
            meter.record_generation("nda", NDA_FIELDS)
        if banner:
            meter.mark_prompt_seen("banner")
        if modal:
            meter.mark_prompt_seen("modal")

        meter.reset()

        record = meter.record()
        assert record.generation_count == 0
        assert record.generations == []
        assert not record.has_seen_banner
        assert not record.has_seen_modal
        assert meter.remaining() == MAX_FREE_GENERATIONS

    def test_anonymous_session_id_only_with_history(self, meter):
        assert meter.anonymous_session_id() is None
        meter.record_generation("nda", NDA_FIELDS)
        assert meter.anonymous_session_id().startswith("session_")

    @freeze_time("2026-10-19 09:30:00")
    def test_usage_stats(self, meter):
        meter.record_generation("nda", NDA_FIELDS)
        stats = meter.usage_stats()
        assert stats == {
            "totalGenerations": 1,
            "remainingFree": 2,
            "documents": [{"type": "nda", "date": "2026-10-19"}],
            "hasReachedLimit": False,
        }


class TestTamperedLedger:
    """Persisted ledgers are validated on every read."""

    def test_count_history_mismatch_falls_back_to_empty(self, store, meter):
        store.set(USAGE_KEY, {"generationCount": 5, "generations": []})
        assert meter.record().generation_count == 0
        assert meter.current_prompt_type() == PromptType.NONE

    def test_negative_count_rejected(self, store, meter):
        store.set(USAGE_KEY, {"generationCount": -1, "generations": []})
        assert meter.remaining() == MAX_FREE_GENERATIONS

    def test_garbage_falls_back_to_empty(self, storage, meter):
        storage.write(USAGE_KEY, "not json at all")
        assert meter.record() == UsageRecord()
        meter.record_generation("nda", NDA_FIELDS)
        assert meter.record().generation_count == 1

    def test_quota_failure_does_not_raise(self):
        meter = UsageMeter(PersistentStore(MemoryBackend(quota_bytes=10)))
        meter.record_generation("nda", NDA_FIELDS)
        assert meter.record().generation_count == 0


# ── Sanitization ──────────────────────────────────────────────────────────


class TestSanitization:

    def test_only_allow_listed_fields_stored(self, meter):
        generation = meter.record_generation("nda", NDA_FIELDS)
        assert set(generation.form_data) == set(ALLOWED_FIELDS)
        assert "firstPartyAddress" not in generation.form_data
        assert "firstPartyRepresentative" not in generation.form_data

    def test_document_type_defaults(self):
        assert sanitize_form_data({})["documentType"] == "nda"
        assert sanitize_form_data({}, "offer-letter")["documentType"] == "offer-letter"
        assert sanitize_form_data({"documentType": "lease"})["documentType"] == "lease"

    def test_explicit_document_type_wins_over_form(self, meter):
        assert sanitize_form_data({"documentType": "nda"}, "offer-letter")["documentType"] == "offer-letter"
        generation = meter.record_generation("offer-letter", {**NDA_FIELDS, "documentType": "nda"})
        assert generation.form_data["documentType"] == generation.document_type == "offer-letter"

    def test_contact_details_redacted_in_free_text(self):
        cleaned = sanitize_form_data({"purposeOfNDA": "Call 555-123-4567 or mail jo@acme.com"})
        assert cleaned["purposeOfNDA"] == "Call [PHONE] or mail [EMAIL]"

    def test_long_values_truncated(self):
        cleaned = sanitize_form_data({"purposeOfNDA": "x" * 5000})
        assert len(cleaned["purposeOfNDA"]) == 200

    def test_nested_values_dropped(self):
        cleaned = sanitize_form_data({"firstPartyName": {"nested": "object"}})
        assert cleaned["firstPartyName"] is None

    @given(st.dictionaries(st.text(max_size=30), st.text(max_size=300), max_size=15))
    def test_never_keeps_unknown_keys(self, form):
        assert set(sanitize_form_data(form)) == set(ALLOWED_FIELDS)


# ── Reactive view ─────────────────────────────────────────────────────────


class TestUsageView:

    def test_subscribers_see_each_change(self, meter):
        seen = []
        meter.subscribe(seen.append)
        meter.record_generation("nda", NDA_FIELDS)
        meter.mark_prompt_seen("banner")
        meter.reset()
        assert [v.prompt_type for v in seen] == [PromptType.BANNER, PromptType.NONE, PromptType.NONE]
        assert [v.remaining for v in seen] == [2, 2, 3]

    def test_unsubscribe(self, meter):
        seen = []
        sub_id = meter.subscribe(seen.append)
        meter.unsubscribe(sub_id)
        meter.record_generation("nda", NDA_FIELDS)
        assert seen == []

    def test_failing_subscriber_is_isolated(self, meter):
        def boom(view):
            raise RuntimeError("render crashed")

        seen = []
        meter.subscribe(boom)
        meter.subscribe(seen.append)
        meter.record_generation("nda", NDA_FIELDS)
        assert len(seen) == 1

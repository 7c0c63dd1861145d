"""Tests for the shared-report summary job."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.services.document_store import DocumentStore
from app.services.llm import LLMError, LLMResponse, LLMService
from app.services.summary import ReportSummaryService, redact_phi
from factories import seed_report


def _response(text: str) -> LLMResponse:
    return LLMResponse(text=text, model="test-model", total_duration_ms=10, backend="ollama")


@pytest.fixture(name="llm")
def llm_fixture() -> MagicMock:
    mock = MagicMock(spec=LLMService)
    mock.generate = AsyncMock(return_value=_response("  Batch summary.  "))
    return mock


class TestRedaction:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("mail jane.doe@example.com now", "mail [REDACTED_EMAIL] now"),
            ("call 5551234567", "call [REDACTED_PHONE]"),
            ("ssn 123-45-6789", "ssn [REDACTED_SSN]"),
            ("seen by John Smith today", "seen by [REDACTED_NAME] today"),
            ("MRN 12345678", "MRN [REDACTED_ID]"),
        ],
    )
    def test_patterns(self, raw: str, expected: str) -> None:
        assert redact_phi(raw) == expected

    def test_lab_values_kept(self) -> None:
        text = "Glucose 112 mg/dL, HbA1c 5.9%"
        assert redact_phi(text) == text


class TestSummarize:
    @pytest.mark.asyncio
    async def test_no_reports(self, llm, document_store: DocumentStore) -> None:
        service = ReportSummaryService(llm, document_store)
        result = await service.summarize(["missing"])
        assert result.summary == "No medical reports found."
        assert result.report_count == 0
        llm.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_single_batch(self, llm, document_store: DocumentStore) -> None:
        seed_report(document_store, "r1")
        seed_report(document_store, "r2")
        service = ReportSummaryService(llm, document_store, batch_size=5)

        result = await service.summarize(["r1", "r2"])

        assert result.summary == "Batch summary."
        assert result.report_count == 2
        assert result.generated_at.endswith("Z")
        assert llm.generate.await_count == 1

    @pytest.mark.asyncio
    async def test_multiple_batches_are_combined(self, llm, document_store: DocumentStore) -> None:
        for i in range(5):
            seed_report(document_store, f"r{i}")
        llm.generate.side_effect = [
            _response("first"),
            _response("second"),
            _response("third"),
            _response("Combined overview."),
        ]
        service = ReportSummaryService(llm, document_store, batch_size=2)

        result = await service.summarize([f"r{i}" for i in range(5)])

        assert result.summary == "Combined overview."
        assert llm.generate.await_count == 4
        combine_prompt = llm.generate.await_args_list[-1].args[0]
        assert "first" in combine_prompt and "third" in combine_prompt

    @pytest.mark.asyncio
    async def test_newest_report_first(self, llm, document_store: DocumentStore) -> None:
        seed_report(document_store, "old", report_date="2024-01-01T00:00:00.000Z", title="Old panel")
        seed_report(document_store, "new", report_date="2025-06-01T00:00:00.000Z", title="New panel")
        service = ReportSummaryService(llm, document_store)

        await service.summarize(["old", "new"])

        prompt = llm.generate.await_args.args[0]
        assert prompt.index("New panel") < prompt.index("Old panel")

    @pytest.mark.asyncio
    async def test_prompt_is_redacted_and_local_only(self, llm, document_store: DocumentStore) -> None:
        seed_report(document_store, "r1", extracted_text="Patient email a.b@example.com, glucose 112")
        service = ReportSummaryService(llm, document_store)

        await service.summarize(["r1"])

        call = llm.generate.await_args
        assert "a.b@example.com" not in call.args[0]
        assert "[REDACTED_EMAIL]" in call.args[0]
        assert call.kwargs["local_only"] is True

    @pytest.mark.asyncio
    async def test_cloud_fallback_opt_in(self, llm, document_store: DocumentStore) -> None:
        seed_report(document_store, "r1")
        service = ReportSummaryService(llm, document_store, allow_cloud_fallback=True)
        await service.summarize(["r1"])
        assert llm.generate.await_args.kwargs["local_only"] is False

    @pytest.mark.asyncio
    async def test_llm_failure_propagates_after_retries(self, llm, document_store: DocumentStore) -> None:
        seed_report(document_store, "r1")
        llm.generate.side_effect = LLMError("down")
        service = ReportSummaryService(llm, document_store, retries=2, retry_base_delay=0)
        with pytest.raises(LLMError):
            await service.summarize(["r1"])
        assert llm.generate.await_count == 3

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, llm, document_store: DocumentStore) -> None:
        seed_report(document_store, "r1")
        llm.generate.side_effect = [LLMError("timed out"), _response("Recovered summary.")]
        service = ReportSummaryService(llm, document_store, retry_base_delay=0)

        result = await service.summarize(["r1"])

        assert result.summary == "Recovered summary."
        assert llm.generate.await_count == 2

    @pytest.mark.asyncio
    async def test_retry_backoff_doubles(self, llm, document_store: DocumentStore) -> None:
        seed_report(document_store, "r1")
        llm.generate.side_effect = LLMError("down")
        service = ReportSummaryService(llm, document_store, retries=2, retry_base_delay=0.5)
        with patch("app.services.summary.asyncio.sleep", new=AsyncMock()) as sleep:
            with pytest.raises(LLMError):
                await service.summarize(["r1"])
        assert [c.args[0] for c in sleep.await_args_list] == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_no_retries(self, llm, document_store: DocumentStore) -> None:
        seed_report(document_store, "r1")
        llm.generate.side_effect = LLMError("down")
        with pytest.raises(LLMError):
            await ReportSummaryService(llm, document_store, retries=0).summarize(["r1"])
        assert llm.generate.await_count == 1

    def test_rejects_bad_batch_size(self, llm, document_store: DocumentStore) -> None:
        with pytest.raises(ValueError):
            ReportSummaryService(llm, document_store, batch_size=0)

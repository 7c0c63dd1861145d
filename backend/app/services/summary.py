"""AI summary of a set of shared reports.

Reports are redacted for obvious identifiers, summarised in batches, and
the batch summaries combined into one plain-language overview that the
doctor sees next to the shared files.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any

from app.services.document_store import REPORTS, DocumentStore
from app.services.llm import LLMError, LLMService
from app.utils.formats import normalize_report_date, to_iso, utcnow

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a health report analyst. Summarise the clinical data in the "
    "documents you are given. Never diagnose, prescribe treatment or give "
    "medical advice; stay strictly observational. Explain everything in "
    "plain, everyday language a person without medical training understands."
)

_BATCH_PROMPT = (
    "For the reports below, produce a concise bullet list of the most "
    "important observations (3-6 bullets) and a single one-sentence "
    "patient-friendly takeaway. Return plain text only.\n\n{reports}"
)

_COMBINE_PROMPT = (
    "Combine the following batch summaries into: (1) a 3-5 sentence "
    "plain-language overview, (2) a bulleted list of key findings, and "
    "(3) three short non-prescriptive next steps such as \"consider "
    "discussing X with your clinician\". Do NOT diagnose.\n\n"
    "Batch summaries:\n{summaries}"
)

_MAX_BATCH_SUMMARY_CHARS = 2000
_MAX_REPORT_CHARS = 4000

_REDACTIONS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}"), "[REDACTED_EMAIL]"),
    (re.compile(r"\b\d{10}\b"), "[REDACTED_PHONE]"),
    (re.compile(r"\b\d{3}-\d{2}-\d{4}\b"), "[REDACTED_SSN]"),
    (re.compile(r"\b[A-Z][a-z]+\s+[A-Z][a-z]+\b"), "[REDACTED_NAME]"),
    (re.compile(r"\b\d{6,}\b"), "[REDACTED_ID]"),
]


def redact_phi(text: str) -> str:
    """Mask emails, phone numbers, SSNs, two-word names and long ids."""
    for pattern, replacement in _REDACTIONS:
        text = pattern.sub(replacement, text)
    return text


def _chunks(items: list, size: int) -> list[list]:
    return [items[i:i + size] for i in range(0, len(items), size)]


def _format_report(index: int, report: dict[str, Any]) -> str:
    content = report.get("summary") or report.get("extracted_text") or ""
    content = redact_phi(str(content))[:_MAX_REPORT_CHARS]
    return (
        f"--- Report {index} (Date: {normalize_report_date(report.get('report_date')) or 'N/A'}) ---\n"
        f"Category: {report.get('category') or 'General'}\n"
        f"Title: {report.get('title') or 'Untitled'}\n"
        f"Content Preview:\n{content}\n"
        f"--- End of Report {index} ---"
    )


@dataclass(frozen=True, slots=True)
class SummaryResult:
    summary: str
    generated_at: str
    report_count: int


class ReportSummaryService:
    """Generate a summary for the reports referenced by a share token."""

    def __init__(
        self,
        llm_service: LLMService,
        documents: DocumentStore,
        batch_size: int = 5,
        allow_cloud_fallback: bool = False,
        retries: int = 2,
        retry_base_delay: float = 0.5,
    ) -> None:
        if batch_size <= 0:
            raise ValueError(f"batch_size must be > 0, got {batch_size}")
        if retries < 0:
            raise ValueError(f"retries must be >= 0, got {retries}")
        self._llm = llm_service
        self._documents = documents
        self._batch_size = batch_size
        self._local_only = not allow_cloud_fallback
        self._retries = retries
        self._retry_base_delay = retry_base_delay

    async def _generate(self, prompt: str) -> str:
        """One model call, retried with exponential backoff: base * 2^(attempt-1)."""
        attempt = 0
        while True:
            try:
                response = await self._llm.generate(
                    prompt, system=SYSTEM_PROMPT, local_only=self._local_only
                )
                return response.text.strip()
            except LLMError as exc:
                attempt += 1
                if attempt > self._retries:
                    raise
                delay = self._retry_base_delay * (2 ** (attempt - 1))
                logger.warning(
                    "Summary model call failed (attempt %d/%d), retrying in %.1fs: %s",
                    attempt, self._retries + 1, delay, exc,
                )
                await asyncio.sleep(delay)

    def _load_reports(self, report_ids) -> list[dict[str, Any]]:
        reports = []
        for report_id in report_ids:
            report = self._documents.get_by_id(REPORTS, report_id)
            if report is not None:
                reports.append(report)
        # Newest first; ISO strings sort chronologically
        reports.sort(
            key=lambda r: normalize_report_date(r.get("report_date")) or "",
            reverse=True,
        )
        return reports

    async def summarize(self, report_ids) -> SummaryResult:
        """Summarise the given reports.

        Raises LLMError once a model call has failed on every attempt.
        """
        reports = self._load_reports(report_ids)
        if not reports:
            return SummaryResult(
                summary="No medical reports found.",
                generated_at=to_iso(utcnow()),
                report_count=0,
            )

        batch_summaries: list[str] = []
        for batch in _chunks(reports, self._batch_size):
            text = "\n\n".join(_format_report(i, r) for i, r in enumerate(batch, start=1))
            batch_text = await self._generate(_BATCH_PROMPT.format(reports=text))
            batch_summaries.append(batch_text[:_MAX_BATCH_SUMMARY_CHARS])

        if len(batch_summaries) == 1:
            summary = batch_summaries[0]
        else:
            summary = await self._generate(
                _COMBINE_PROMPT.format(summaries="\n\n---\n\n".join(batch_summaries))
            )

        logger.info("Generated summary for %d report(s) in %d batch(es)", len(reports), len(batch_summaries))
        return SummaryResult(
            summary=summary or "Unable to generate summary at this time.",
            generated_at=to_iso(utcnow()),
            report_count=len(reports),
        )

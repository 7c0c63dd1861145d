"""Doctor-side view of a share token.

Expands a validated token into the reports it names, each with a fresh
download grant. Every report is resolved on its own: a deleted report,
a failed fetch or a failed grant never sinks the rest of the share.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from app.errors import DependencyError, NotFoundError, TokenInvalidError
from app.services.document_store import REPORTS, DocumentStore
from app.services.share_tokens import ShareTokenService
from app.services.storage import DEFAULT_GRANT_TTL, StorageService
from app.utils.formats import normalize_report_date

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ReportView:
    """Limited report fields shown to the doctor."""

    report_id: str
    file_name: str | None
    file_type: str | None
    title: str | None
    report_date: str | None
    category: str | None
    doctor_name: str | None
    clinic_name: str | None
    storage_url: str | None


@dataclass(frozen=True, slots=True)
class SharedReports:
    expires_at: datetime
    resources: list[ReportView] = field(default_factory=list)
    attached_summary: str | None = None


class AccessResolver:
    def __init__(
        self,
        share_tokens: ShareTokenService,
        documents: DocumentStore,
        storage: StorageService,
        grant_ttl_seconds: int = DEFAULT_GRANT_TTL,
    ) -> None:
        self._share_tokens = share_tokens
        self._documents = documents
        self._storage = storage
        self._grant_ttl = grant_ttl_seconds

    def resolve(self, wire_token: str) -> SharedReports:
        """Return the shared reports for a token.

        Raises:
            TokenInvalidError: The token is malformed, forged or expired.
        """
        validation = self._share_tokens.validate(wire_token)
        if not validation.valid:
            raise TokenInvalidError("Invalid or expired QR token")

        resources: list[ReportView] = []
        for report_id in validation.resource_ids:
            view = self._resolve_report(report_id)
            if view is not None:
                resources.append(view)

        record = self._share_tokens.get_record(wire_token)
        return SharedReports(
            expires_at=validation.expires_at,
            resources=resources,
            attached_summary=record.attached_summary if record is not None else None,
        )

    def _resolve_report(self, report_id: str) -> ReportView | None:
        try:
            report = self._documents.get_by_id(REPORTS, report_id)
        except DependencyError:
            logger.exception("Error fetching report %s", report_id)
            return None
        if report is None:
            logger.info("Shared report %s no longer exists, skipping", report_id)
            return None

        return ReportView(
            report_id=report_id,
            file_name=report.get("file_name"),
            file_type=report.get("file_type"),
            title=report.get("title"),
            report_date=normalize_report_date(report.get("report_date")),
            category=report.get("category"),
            doctor_name=report.get("doctor_name"),
            clinic_name=report.get("clinic_name"),
            storage_url=self._download_url(report_id, report),
        )

    def _download_url(self, report_id: str, report: dict[str, Any]) -> str | None:
        """Signed URL for the report file, else its static locator."""
        fallback = report.get("storage_url")
        file_key = report.get("file_key")
        if not file_key:
            return fallback
        try:
            return self._storage.generate_download_grant(file_key, self._grant_ttl).url
        except NotFoundError:
            logger.warning("File for report %s missing from storage", report_id)
        except Exception:
            logger.exception("Error generating download URL for report %s", report_id)
        return fallback

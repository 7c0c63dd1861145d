"""Server-side mirror of issued share tokens.

One document per token in the ``qrTokens`` collection, keyed by the wire
token itself. Records are written at issuance, gain a summary at most
once afterwards, and are never deleted on expiry.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from app.services.document_store import QR_TOKENS, DocumentStore
from app.services.token_codec import LogicalToken
from app.utils.formats import parse_iso, to_iso


@dataclass(frozen=True, slots=True)
class TokenRecord:
    resource_ids: tuple[str, ...]
    owner_id: str
    expires_at: datetime
    created_at: datetime
    attached_summary: str | None = None
    summary_generated_at: str | None = None

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


class TokenStore:
    """put/get/attach_summary over the ``qrTokens`` collection."""

    def __init__(self, documents: DocumentStore) -> None:
        self._documents = documents

    def put(self, wire_token: str, token: LogicalToken) -> None:
        self._documents.put(
            QR_TOKENS,
            wire_token,
            {
                "qr_token": wire_token,
                "resource_ids": list(token.resource_ids),
                "owner_id": token.owner_id,
                "expires_at": to_iso(token.expires_at),
                "created_at": to_iso(token.created_at),
                "attached_summary": None,
                "summary_generated_at": None,
            },
        )

    def get(self, wire_token: str) -> TokenRecord | None:
        """Return the mirror record, or None if absent.

        A record whose fields cannot be parsed is treated as absent so the
        caller falls back to decrypting the token.
        """
        data = self._documents.get_by_id(QR_TOKENS, wire_token)
        if data is None:
            return None
        try:
            return TokenRecord(
                resource_ids=tuple(data["resource_ids"]),
                owner_id=data["owner_id"],
                expires_at=parse_iso(data["expires_at"]),
                created_at=parse_iso(data["created_at"]),
                attached_summary=data.get("attached_summary"),
                summary_generated_at=data.get("summary_generated_at"),
            )
        except (KeyError, TypeError, ValueError):
            return None

    def attach_summary(self, wire_token: str, summary: str, generated_at: str) -> None:
        """Store the AI summary. Raises NotFoundError if the record is gone."""
        self._documents.update(
            QR_TOKENS,
            wire_token,
            {"attached_summary": summary, "summary_generated_at": generated_at},
        )

"""Share-token lifecycle — issue and validate QR capability tokens.

A token is Fresh until ``now > expires_at`` and Expired from then on;
anything that is not an authentic token for this process's key is
Invalid. None of these states is stored: they are derived on every
validation.

Validation takes one of two branches:

* store hit: the mirror record decides; the cipher is not consulted.
* decrypt fallback: no record (never written, or evicted); the wire
  token is decrypted and its own expiry checked.

Callers cannot tell an expired token from a forged one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from app.errors import DependencyError
from app.services.summary import ReportSummaryService
from app.services.token_codec import IssuedToken, TokenCodec
from app.services.token_store import TokenRecord, TokenStore
from app.utils.crypto import token_fingerprint

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ValidationResult:
    valid: bool
    resource_ids: tuple[str, ...] = field(default=())
    expires_at: datetime | None = None


INVALID = ValidationResult(valid=False)


class ShareTokenService:
    """Issues tokens, validates them, and attaches AI summaries."""

    def __init__(
        self,
        codec: TokenCodec,
        store: TokenStore,
        summary_service: ReportSummaryService | None = None,
    ) -> None:
        self._codec = codec
        self._store = store
        self._summary_service = summary_service

    def issue(self, resource_ids, owner_id: str, ttl_seconds: int) -> IssuedToken:
        """Mint a token for resources the caller has already verified are owned by owner_id.

        The mirror record is written before returning. A store failure
        propagates: the token is not handed out if it could not be recorded.
        """
        issued = self._codec.issue(resource_ids, owner_id, ttl_seconds)
        self._store.put(issued.wire_token, issued.token)
        logger.info(
            "Issued share token %s for %d report(s), expires %s",
            token_fingerprint(issued.wire_token),
            len(issued.token.resource_ids),
            issued.expires_at.isoformat(),
        )
        return issued

    def validate(self, wire_token: str) -> ValidationResult:
        if not wire_token:
            return INVALID
        try:
            record = self._store.get(wire_token)
        except DependencyError:
            logger.warning(
                "Token store lookup failed for %s, falling back to decryption",
                token_fingerprint(wire_token),
            )
            record = None
        if record is not None:
            return self._validate_from_record(record)
        return self._validate_by_decryption(wire_token)

    def _validate_from_record(self, record: TokenRecord) -> ValidationResult:
        if record.is_expired(self._codec.now()):
            return INVALID
        return ValidationResult(
            valid=True,
            resource_ids=record.resource_ids,
            expires_at=record.expires_at,
        )

    def _validate_by_decryption(self, wire_token: str) -> ValidationResult:
        token = self._codec.validate_wire_token(wire_token)
        if token is None:
            return INVALID
        return ValidationResult(
            valid=True,
            resource_ids=token.resource_ids,
            expires_at=token.expires_at,
        )

    def get_record(self, wire_token: str) -> TokenRecord | None:
        """Mirror record lookup that never raises; None on absence or store failure."""
        try:
            return self._store.get(wire_token)
        except DependencyError:
            logger.warning("Token store lookup failed for %s", token_fingerprint(wire_token))
            return None

    async def attach_summary(self, wire_token: str, resource_ids) -> str | None:
        """Generate and store an AI summary for an issued token.

        Best-effort: every failure is logged and swallowed. Returns the
        stored summary, or None.
        """
        if self._summary_service is None:
            return None
        try:
            result = await self._summary_service.summarize(resource_ids)
            self._store.attach_summary(wire_token, result.summary, result.generated_at)
        except Exception:
            logger.exception(
                "Failed to attach summary to share token %s", token_fingerprint(wire_token)
            )
            return None
        return result.summary

"""Share-token codec — logical token <-> encrypted wire string.

The wire form is ``ivHex:authTagHex:ciphertextHex`` where the plaintext
is compact JSON of the logical token. Possession of the wire string is
the capability; the codec is the only place that knows its layout.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from app.errors import DecryptionError
from app.utils.crypto import TokenCipher
from app.utils.formats import parse_iso, to_iso, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LogicalToken:
    """Decrypted content of a share token."""

    resource_ids: tuple[str, ...]
    owner_id: str
    expires_at: datetime
    created_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def to_json(self) -> str:
        return json.dumps(
            {
                "resourceIds": list(self.resource_ids),
                "ownerId": self.owner_id,
                "expiresAt": to_iso(self.expires_at),
                "createdAt": to_iso(self.created_at),
            },
            separators=(",", ":"),
        )

    @classmethod
    def from_json(cls, payload: str) -> LogicalToken:
        """Parse decrypted JSON. Raises ValueError on any shape mismatch."""
        data = json.loads(payload)
        if not isinstance(data, dict):
            raise ValueError("Token payload is not an object")
        resource_ids = data.get("resourceIds")
        owner_id = data.get("ownerId")
        if (
            not isinstance(resource_ids, list)
            or not resource_ids
            or not all(isinstance(r, str) for r in resource_ids)
        ):
            raise ValueError("Token payload has no resource ids")
        if not isinstance(owner_id, str):
            raise ValueError("Token payload has no owner")
        return cls(
            resource_ids=tuple(resource_ids),
            owner_id=owner_id,
            expires_at=parse_iso(data.get("expiresAt")),
            created_at=parse_iso(data.get("createdAt")),
        )


@dataclass(frozen=True, slots=True)
class IssuedToken:
    wire_token: str
    expires_at: datetime
    token: LogicalToken


def dedupe_ids(resource_ids) -> tuple[str, ...]:
    """Drop repeated ids, keeping first-seen order."""
    return tuple(dict.fromkeys(resource_ids))


class TokenCodec:
    """Build, encrypt, decrypt and expiry-check share tokens."""

    __slots__ = ("_cipher", "_clock")

    def __init__(
        self,
        cipher: TokenCipher,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._cipher = cipher
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    def issue(self, resource_ids, owner_id: str, ttl_seconds: int) -> IssuedToken:
        ids = dedupe_ids(resource_ids)
        if not ids:
            raise ValueError("At least one resource id is required")
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be > 0, got {ttl_seconds}")
        created_at = self._clock()
        # Wire timestamps carry milliseconds only
        created_at = created_at.replace(microsecond=created_at.microsecond // 1000 * 1000)
        token = LogicalToken(
            resource_ids=ids,
            owner_id=owner_id,
            expires_at=created_at + timedelta(seconds=ttl_seconds),
            created_at=created_at,
        )
        wire_token = self._cipher.encrypt(token.to_json())
        return IssuedToken(wire_token=wire_token, expires_at=token.expires_at, token=token)

    def validate_wire_token(self, wire_token: str) -> LogicalToken | None:
        """Decrypt and check a wire token. Returns None when it is not usable.

        Tampered, malformed and expired tokens all come back as None.
        """
        try:
            token = LogicalToken.from_json(self._cipher.decrypt(wire_token))
        except (DecryptionError, ValueError, TypeError):
            return None
        if token.is_expired(self._clock()):
            return None
        return token

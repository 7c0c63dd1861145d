"""Report file storage with time-limited download grants.

Files live under a local root keyed by their storage key
(``reports/<user_id>/<timestamp>_<name>``). A download grant is a URL
carrying an expiry and an HMAC-SHA256 signature over ``key:expiry``; the
files router redeems it without any other credential.
"""

from __future__ import annotations

import hmac
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote, urlencode

from app.errors import NotFoundError, ShareError
from app.utils.crypto import hmac_sha256

logger = logging.getLogger(__name__)

DEFAULT_GRANT_TTL = 3600  # 1 hour


class InvalidGrantError(ShareError):
    """Raised when a download grant is forged, altered or expired."""


@dataclass(frozen=True, slots=True)
class DownloadGrant:
    url: str
    expires_in: int


class StorageService:
    """Local object storage issuing signed, expiring download URLs."""

    def __init__(
        self,
        root: Path,
        signing_key: bytes,
        base_url: str,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.root = root.resolve()
        self.root.mkdir(parents=True, exist_ok=True)
        self._signing_key = signing_key
        self._base_url = base_url.rstrip("/")
        self._clock = clock

    def _safe_path(self, file_key: str) -> Path:
        """Resolve *file_key* and verify it stays inside the storage root.

        Raises:
            ValueError: If the resolved path escapes the root.
        """
        resolved = (self.root / file_key).resolve()
        if not str(resolved).startswith(str(self.root) + "/"):
            raise ValueError(f"Path traversal detected: {file_key!r}")
        return resolved

    def _sign(self, file_key: str, expires: int) -> str:
        return hmac_sha256(self._signing_key, f"{file_key}:{expires}".encode("utf-8"))

    def store_file(self, file_key: str, data: bytes) -> Path:
        path = self._safe_path(file_key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return path

    def exists(self, file_key: str) -> bool:
        try:
            return self._safe_path(file_key).is_file()
        except ValueError:
            return False

    def generate_download_grant(
        self, file_key: str, ttl_seconds: int = DEFAULT_GRANT_TTL
    ) -> DownloadGrant:
        """Issue a signed URL for an existing object.

        Raises:
            NotFoundError: If no object is stored under *file_key*.
        """
        if not self.exists(file_key):
            logger.error("File does not exist: %s", file_key)
            raise NotFoundError(f"File not found: {file_key}")
        expires = int(self._clock()) + ttl_seconds
        query = urlencode({"expires": expires, "signature": self._sign(file_key, expires)})
        url = f"{self._base_url}/api/files/{quote(file_key)}?{query}"
        return DownloadGrant(url=url, expires_in=ttl_seconds)

    def redeem_grant(self, file_key: str, expires: int, signature: str) -> Path:
        """Check a grant and return the file it unlocks.

        Raises:
            InvalidGrantError: Bad signature or expired grant.
            NotFoundError: The object was removed after the grant was issued.
        """
        expected = self._sign(file_key, expires)
        if not hmac.compare_digest(expected, signature):
            raise InvalidGrantError("Invalid download signature")
        if int(self._clock()) > expires:
            raise InvalidGrantError("Download link expired")
        if not self.exists(file_key):
            raise NotFoundError(f"File not found: {file_key}")
        return self._safe_path(file_key)

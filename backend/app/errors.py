"""Error taxonomy for report sharing.

Cipher and parse failures are converted to TokenInvalidError before they
reach a router; expired and malformed tokens are reported identically.
"""

from __future__ import annotations


class ShareError(Exception):
    """Base class for report-sharing errors."""


class DecryptionError(ShareError):
    """Raised when a wire token cannot be authenticated and decrypted."""


class TokenInvalidError(ShareError):
    """Raised when a token is malformed, tampered with, or expired."""


class NotFoundError(ShareError):
    """Raised when a document or stored object does not exist."""


class DependencyError(ShareError):
    """Raised when the document store or storage backend is unreachable."""

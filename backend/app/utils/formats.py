"""Timestamp and file-format helpers.

Share tokens and token records carry timestamps as ISO-8601 UTC strings
with millisecond precision and a ``Z`` suffix, e.g.
``2026-01-05T10:00:00.000Z``.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

# Extension → MIME for the report formats patients upload
_EXT_TO_MIME: dict[str, str] = {
    ".pdf": "application/pdf",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".tiff": "image/tiff",
    ".webp": "image/webp",
    ".heic": "image/heic",
    ".txt": "text/plain",
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    """Format an aware or naive-UTC datetime as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    Accepts a trailing ``Z``. Naive values are taken to be UTC.
    Raises ValueError on malformed input.
    """
    if not isinstance(value, str):
        raise ValueError(f"Expected ISO-8601 string, got {type(value).__name__}")
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def normalize_report_date(value: object) -> str | None:
    """Render a stored report date as an ISO string, or None if unusable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_iso(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        return value
    return None


def extension_to_mime(filename: str) -> str | None:
    """Infer MIME type from a file extension.

    Returns None if the extension is not recognized.
    """
    dot_idx = filename.rfind(".")
    if dot_idx == -1:
        return None
    ext = filename[dot_idx:].lower()
    return _EXT_TO_MIME.get(ext)

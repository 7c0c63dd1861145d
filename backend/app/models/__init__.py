from __future__ import annotations

from app.models.document import Document  # noqa: F401

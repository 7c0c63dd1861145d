"""Document store backed by the SQLModel ``documents`` table.

Collections hold JSON records keyed by id, the way the sharing code reads
reports, users and QR token mirrors. Each call runs in its own short
session so the store is safe to use from background tasks that outlive
the request.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from app.errors import DependencyError, NotFoundError
from app.models.document import Document

logger = logging.getLogger(__name__)

REPORTS = "reports"
USERS = "users"
QR_TOKENS = "qrTokens"


class DocumentStore:
    """get/put/update over collections of JSON documents."""

    def __init__(self, engine) -> None:
        self._engine = engine

    def get_by_id(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Return a copy of the document's data, or None if absent."""
        try:
            with Session(self._engine) as session:
                doc = session.get(Document, (collection, doc_id))
                if doc is None:
                    return None
                return dict(doc.data)
        except SQLAlchemyError as exc:
            logger.error("Document read failed for %s: %s", collection, exc)
            raise DependencyError(f"Document store unavailable: {exc}") from exc

    def put(self, collection: str, doc_id: str, record: dict[str, Any]) -> None:
        """Create or replace a document (last write wins)."""
        now = datetime.now(timezone.utc)
        try:
            with Session(self._engine) as session:
                doc = session.get(Document, (collection, doc_id))
                if doc is None:
                    doc = Document(collection=collection, doc_id=doc_id, data=dict(record))
                else:
                    doc.data = dict(record)
                    doc.updated_at = now
                session.add(doc)
                session.commit()
        except SQLAlchemyError as exc:
            logger.error("Document write failed for %s: %s", collection, exc)
            raise DependencyError(f"Document store unavailable: {exc}") from exc

    def update(self, collection: str, doc_id: str, partial: dict[str, Any]) -> None:
        """Merge fields into an existing document.

        Raises:
            NotFoundError: If the document does not exist.
        """
        try:
            with Session(self._engine) as session:
                doc = session.get(Document, (collection, doc_id))
                if doc is None:
                    raise NotFoundError(f"No document {doc_id!r} in {collection!r}")
                # Reassign so the JSON column is flagged dirty
                doc.data = {**doc.data, **partial}
                doc.updated_at = datetime.now(timezone.utc)
                session.add(doc)
                session.commit()
        except SQLAlchemyError as exc:
            logger.error("Document update failed for %s: %s", collection, exc)
            raise DependencyError(f"Document store unavailable: {exc}") from exc

    def delete(self, collection: str, doc_id: str) -> bool:
        """Remove a document. Returns False if it did not exist."""
        try:
            with Session(self._engine) as session:
                doc = session.get(Document, (collection, doc_id))
                if doc is None:
                    return False
                session.delete(doc)
                session.commit()
                return True
        except SQLAlchemyError as exc:
            logger.error("Document delete failed for %s: %s", collection, exc)
            raise DependencyError(f"Document store unavailable: {exc}") from exc

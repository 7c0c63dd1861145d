"""FastAPI dependency injection for auth and the report-sharing services."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.auth import decode_access_token
from app.config import get_settings
from app.services.access_resolver import AccessResolver
from app.services.document_store import USERS, DocumentStore
from app.services.llm import LLMService
from app.services.share_tokens import ShareTokenService
from app.services.storage import StorageService
from app.services.summary import ReportSummaryService
from app.services.token_codec import TokenCodec
from app.services.token_store import TokenStore
from app.utils.crypto import TokenCipher
from app.utils.formats import utcnow

_bearer_scheme = HTTPBearer(auto_error=True)


def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Depends(_bearer_scheme),
) -> str:
    """Extract and validate the JWT access token from the Authorization header.

    Returns the user id (sub claim). Raises HTTPException 401 otherwise.
    """
    return decode_access_token(credentials.credentials)["sub"]


def _from_state(request: Request, name: str, label: str):
    svc = getattr(request.app.state, name, None)
    if svc is None:
        raise HTTPException(status_code=503, detail=f"{label} unavailable")
    return svc


def get_document_store(request: Request) -> DocumentStore:
    """Inject the DocumentStore initialized at startup."""
    return _from_state(request, "document_store", "Document store")


def get_token_cipher(request: Request) -> TokenCipher:
    """Inject the process-wide share-token cipher."""
    return _from_state(request, "token_cipher", "Token cipher")


def get_storage_service(request: Request) -> StorageService:
    """Inject the StorageService initialized at startup."""
    return _from_state(request, "storage_service", "Storage service")


def get_llm_service(request: Request) -> LLMService | None:
    """Inject the LLMService if summaries are enabled."""
    return getattr(request.app.state, "llm_service", None)


def get_clock() -> Callable[[], datetime]:
    return utcnow


def require_role(role: str):
    """Dependency factory: the caller's user document must carry *role*."""

    def _check(
        user_id: str = Depends(get_current_user_id),
        documents: DocumentStore = Depends(get_document_store),
    ) -> str:
        user = documents.get_by_id(USERS, user_id)
        if user is None or user.get("role") != role:
            raise HTTPException(status_code=403, detail=f"{role.capitalize()} access required")
        return user_id

    return _check


def get_share_token_service(
    cipher: TokenCipher = Depends(get_token_cipher),
    documents: DocumentStore = Depends(get_document_store),
    llm_service: LLMService | None = Depends(get_llm_service),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> ShareTokenService:
    """Construct ShareTokenService from its dependencies."""
    settings = get_settings()
    summary_service = None
    if llm_service is not None:
        summary_service = ReportSummaryService(
            llm_service,
            documents,
            batch_size=settings.summary_batch_size,
            allow_cloud_fallback=settings.summary_allow_cloud_fallback,
            retries=settings.summary_llm_retries,
            retry_base_delay=settings.summary_retry_base_delay_seconds,
        )
    return ShareTokenService(
        codec=TokenCodec(cipher, clock=clock),
        store=TokenStore(documents),
        summary_service=summary_service,
    )


def get_access_resolver(
    share_tokens: ShareTokenService = Depends(get_share_token_service),
    documents: DocumentStore = Depends(get_document_store),
    storage: StorageService = Depends(get_storage_service),
) -> AccessResolver:
    """Construct AccessResolver from its dependencies."""
    return AccessResolver(
        share_tokens=share_tokens,
        documents=documents,
        storage=storage,
        grant_ttl_seconds=get_settings().download_grant_ttl_seconds,
    )

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

# Set test environment BEFORE importing app modules.
# app.db creates the engine at module level using get_settings().db_url,
# so we must override the env vars before any app imports.
_test_tmp = tempfile.mkdtemp(prefix="medshare-test-")
os.environ.setdefault("DATA_DIR", os.path.join(_test_tmp, "data"))
os.environ.setdefault("DB_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-for-integration-tests-only")
os.environ.setdefault("SUMMARY_ENABLED", "0")
os.environ.setdefault("SUMMARY_RETRY_BASE_DELAY_SECONDS", "0")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

import app.models  # noqa: F401 — register SQLModel tables
from app.db import get_session
from app.dependencies import (
    get_clock,
    get_document_store,
    get_llm_service,
    get_storage_service,
    get_token_cipher,
)
from app.main import app as fastapi_app
from app.services.document_store import DocumentStore
from app.services.llm import LLMResponse, LLMService
from app.services.share_tokens import ShareTokenService
from app.services.storage import StorageService
from app.services.token_codec import TokenCodec
from app.services.token_store import TokenStore
from app.utils.crypto import TokenCipher
from factories import FakeClock


# ── Database fixtures ─────────────────────────────────────────────────


@pytest.fixture(name="engine")
def engine_fixture():
    """Create an in-memory SQLite engine for testing.

    Uses StaticPool so every connection shares the same in-memory database.
    Recreates tables per test for full isolation.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(name="session")
def session_fixture(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture(name="document_store")
def document_store_fixture(engine) -> DocumentStore:
    return DocumentStore(engine)


# ── Token fixtures ────────────────────────────────────────────────────


@pytest.fixture(name="clock")
def clock_fixture() -> FakeClock:
    return FakeClock()


@pytest.fixture(name="token_key")
def token_key_fixture() -> bytes:
    return os.urandom(32)


@pytest.fixture(name="cipher")
def cipher_fixture(token_key: bytes) -> TokenCipher:
    return TokenCipher(token_key)


@pytest.fixture(name="codec")
def codec_fixture(cipher: TokenCipher, clock: FakeClock) -> TokenCodec:
    return TokenCodec(cipher, clock=clock)


@pytest.fixture(name="token_store")
def token_store_fixture(document_store: DocumentStore) -> TokenStore:
    return TokenStore(document_store)


@pytest.fixture(name="share_tokens")
def share_tokens_fixture(codec: TokenCodec, token_store: TokenStore) -> ShareTokenService:
    return ShareTokenService(codec=codec, store=token_store)


# ── Storage fixtures ──────────────────────────────────────────────────


@pytest.fixture(name="storage_service")
def storage_service_fixture(tmp_path: Path) -> StorageService:
    return StorageService(
        root=tmp_path / "files",
        signing_key=b"\x11" * 32,
        base_url="http://testserver",
    )


# ── Mock AI service fixtures ──────────────────────────────────────────


@pytest.fixture(name="mock_llm_service")
def mock_llm_service_fixture() -> MagicMock:
    """Mock LLMService for tests that don't need a real Ollama."""
    mock = MagicMock(spec=LLMService)
    mock.model = "test-model"
    mock.has_fallback = False
    mock.generate = AsyncMock(
        return_value=LLMResponse(
            text="Blood sugar is a little higher than normal.",
            model="test-model",
            total_duration_ms=100,
            backend="ollama",
        )
    )
    mock.check_health = AsyncMock(return_value=True)
    return mock


# ── HTTP client fixtures ──────────────────────────────────────────────


@pytest.fixture(name="client")
def client_fixture(session, document_store, cipher, storage_service, clock):
    """TestClient wired to the in-memory store, a fixed key and a fake clock."""

    def _get_session_override():
        yield session

    fastapi_app.dependency_overrides[get_session] = _get_session_override
    fastapi_app.dependency_overrides[get_document_store] = lambda: document_store
    fastapi_app.dependency_overrides[get_token_cipher] = lambda: cipher
    fastapi_app.dependency_overrides[get_storage_service] = lambda: storage_service
    fastapi_app.dependency_overrides[get_clock] = lambda: clock
    fastapi_app.dependency_overrides[get_llm_service] = lambda: None
    with TestClient(fastapi_app) as tc:
        yield tc
    fastapi_app.dependency_overrides.clear()


@pytest.fixture(name="summary_client")
def summary_client_fixture(client, mock_llm_service):
    """`client` with a mock LLM so issuance attaches a summary."""
    fastapi_app.dependency_overrides[get_llm_service] = lambda: mock_llm_service
    yield client

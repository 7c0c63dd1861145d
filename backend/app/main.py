from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import app.models  # noqa: F401 — register SQLModel tables

from app.config import get_settings
from app.db import create_db_and_tables, engine
from app.errors import DependencyError
from app.routers import files, health, share

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    create_db_and_tables()

    from app.services.document_store import DocumentStore
    from app.services.storage import StorageService
    from app.utils.crypto import TokenCipher, derive_token_key

    # One key for the whole process lifetime, never touched per request
    token_cipher = TokenCipher.from_material(settings.qr_secret_key)
    if token_cipher.ephemeral:
        logger.warning(
            "QR_SECRET_KEY is not set, using a random per-process key. "
            "Share tokens issued before a restart will not validate afterwards "
            "unless their server-side record survives."
        )
    app.state.token_cipher = token_cipher
    app.state.document_store = DocumentStore(engine)

    if settings.download_signing_key:
        signing_key = derive_token_key(settings.download_signing_key)
    else:
        signing_key = token_cipher.derive_subkey(b"download-grant")
    app.state.storage_service = StorageService(
        root=settings.data_dir / "files",
        signing_key=signing_key,
        base_url=settings.public_base_url,
    )

    if settings.summary_enabled:
        from app.services.llm import LLMService

        app.state.llm_service = LLMService(
            ollama_url=settings.ollama_url,
            model=settings.llm_model,
            fallback_url=settings.fallback_llm_url,
            fallback_api_key=settings.fallback_llm_api_key,
            fallback_model=settings.fallback_llm_model,
        )

    yield


app = FastAPI(
    title="MedShare",
    description="Time-limited QR sharing of medical reports",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(DependencyError)
async def _dependency_error_handler(request: Request, exc: DependencyError) -> JSONResponse:
    logger.error("Dependency failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable"})


@app.exception_handler(Exception)
async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        f"https://{settings.domain}",
        "http://localhost:3000",
        "http://localhost:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(share.router)
app.include_router(files.router)

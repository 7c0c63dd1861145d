from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlmodel import Session, text

from app.db import get_session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
async def health(request: Request, session: Session = Depends(get_session)):
    db_status = "ok"
    try:
        session.exec(text("SELECT 1"))
    except Exception:
        logger.exception("Health check database query failed")
        db_status = "error"

    llm_status: dict = {"ollama": "not_configured", "fallback": "not_configured"}
    llm_service = getattr(request.app.state, "llm_service", None)
    if llm_service is not None:
        ollama_ok = await llm_service.check_health()
        llm_status["ollama"] = "ok" if ollama_ok else "unreachable"
        if llm_service.has_fallback:
            llm_status["fallback"] = "configured"

    cipher = getattr(request.app.state, "token_cipher", None)
    token_key_status = "missing"
    if cipher is not None:
        token_key_status = "ephemeral" if cipher.ephemeral else "configured"

    return {
        "status": "healthy" if db_status == "ok" else "unhealthy",
        "service": "medshare-backend",
        "version": "0.1.0",
        "checks": {
            "database": db_status,
            "llm": llm_status,
            "token_key": token_key_status,
        },
    }


@router.get("/health/ready")
async def readiness(session: Session = Depends(get_session)):
    try:
        session.exec(text("SELECT 1"))
    except Exception:
        logger.exception("Readiness check database query failed")
        return JSONResponse(
            status_code=503,
            content={
                "status": "not ready",
                "service": "medshare-backend",
                "error": "database unavailable",
            },
        )

    return {
        "status": "ready",
        "service": "medshare-backend",
    }

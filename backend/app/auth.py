"""Access-token helpers.

Users authenticate against the external identity provider, which mints
HS256 JWTs signed with the shared ``JWT_SECRET``. The ``sub`` claim is the
user id; documents in the ``users`` collection carry the user's role.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fastapi import HTTPException
from jose import JWTError, jwt

from app.config import get_settings

JWT_ALGORITHM = "HS256"


def create_access_token(user_id: str, expires_minutes: int = 15) -> str:
    """Mint an access token. Used by tests and the dev token script."""
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "type": "access",
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Decode and validate an access JWT. Raises HTTPException 401 on failure."""
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[JWT_ALGORITHM])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    if payload.get("type", "access") != "access":
        raise HTTPException(status_code=401, detail="Invalid token type")
    if not payload.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid token payload")
    return payload

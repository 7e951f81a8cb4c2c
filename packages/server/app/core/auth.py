"""
Verified identity for Rollcall.

Authentication proper (login, OIDC, sessions) lives outside this service.
Upstream issues a signed JWT whose ``sub`` claim is the user id; this module
only verifies it and hands the id to the access resolver. A missing or
invalid token means "no verified identity", never a guest.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
import structlog
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.config import get_settings

log = structlog.get_logger()
settings = get_settings()

bearer_scheme = HTTPBearer(auto_error=False)


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

def create_jwt(
    user_id: uuid.UUID,
    *,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed JWT for a user id."""
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": exp,
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_jwt(token: str) -> dict:
    """Decode and verify a JWT. Raises jwt.PyJWTError on failure."""
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])


def verified_user_id_from_token(token: Optional[str]) -> Optional[uuid.UUID]:
    """Return the user id carried by a valid token, else None."""
    if not token:
        return None
    try:
        payload = decode_jwt(token)
        return uuid.UUID(payload["sub"])
    except (jwt.PyJWTError, KeyError, ValueError, TypeError, AttributeError):
        log.debug("auth.token_rejected")
        return None


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

async def get_verified_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[uuid.UUID]:
    """Resolve the verified user id from the Authorization header, if any."""
    if credentials is None:
        return None
    return verified_user_id_from_token(credentials.credentials)

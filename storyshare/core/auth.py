"""
Caller identity for Story Share.

Identities are issued by an external provider as signed JWTs; this module only
verifies them and yields the caller's UUID (`sub` claim). The token is read from
an `Authorization: Bearer` header or, for browsers, the session cookie.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
import structlog
from fastapi import Depends, HTTPException, Request
from fastapi.security import APIKeyHeader

from storyshare.core.config import get_settings

log = structlog.get_logger()
settings = get_settings()

authorization_header = APIKeyHeader(name="Authorization", auto_error=False)


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

def create_jwt(
    user_id: uuid.UUID,
    *,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed JWT for a user id (tooling and tests)."""
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


def caller_id_from_token(token: str) -> uuid.UUID:
    try:
        payload = decode_jwt(token)
        return uuid.UUID(payload["sub"])
    except (jwt.PyJWTError, KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid or expired session")


# ---------------------------------------------------------------------------
# Authentication dependency
# ---------------------------------------------------------------------------

async def get_caller_id(
    request: Request,
    authorization: Optional[str] = Depends(authorization_header),
) -> uuid.UUID:
    """Resolve the authenticated caller. Tries the bearer token, then the cookie."""
    if authorization and authorization.startswith("Bearer "):
        caller_id = caller_id_from_token(authorization[7:].strip())
    else:
        token = request.cookies.get(settings.session_cookie_name)
        if not token:
            raise HTTPException(status_code=401, detail="Authentication required")
        caller_id = caller_id_from_token(token)

    structlog.contextvars.bind_contextvars(caller_id=str(caller_id))
    request.state.caller_id = caller_id
    return caller_id

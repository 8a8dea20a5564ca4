"""
Session verification for the access service.

Sessions are issued elsewhere; this module only verifies them:
- JWT from ``Authorization: Bearer`` or the session cookie
- Optional Redis revocation list keyed by ``jti``
- A FastAPI dependency yielding the verified user id
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
import structlog
from fastapi import Depends, Request
from fastapi.security import APIKeyHeader

from app.core.config import get_settings
from app.core.errors import Unauthorized
from app.core.redis import get_redis

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
) -> tuple[str, str]:
    """Create a signed session JWT. Returns (token, jti).

    Used by dev tooling and tests; production sessions come from the auth service.
    """
    jti = str(uuid.uuid4())
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(hours=1))
    payload = {"sub": str(user_id), "iat": now, "exp": exp, "jti": jti}
    token = jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)
    return token, jti


def decode_jwt(token: str) -> dict:
    """Decode and verify a JWT. Raises jwt.PyJWTError on failure."""
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])


async def is_jwt_revoked(jti: str) -> bool:
    """Check if a JWT ID has been revoked."""
    redis = await get_redis()
    return await redis.exists(f"jwt:revoked:{jti}") > 0


def _extract_token(request: Request, authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:].strip()
    return request.cookies.get(settings.session_cookie_name)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

async def get_current_user_id(
    request: Request,
    authorization: Optional[str] = Depends(authorization_header),
) -> uuid.UUID:
    """Verified user id of the caller. Raises Unauthorized without a valid session."""
    token = _extract_token(request, authorization)
    if not token:
        raise Unauthorized("Authentication required")

    try:
        payload = decode_jwt(token)
        user_id = uuid.UUID(payload["sub"])
    except (jwt.PyJWTError, KeyError, ValueError):
        raise Unauthorized("Invalid or expired session")

    jti = payload.get("jti")
    if settings.check_token_revocation and jti and await is_jwt_revoked(jti):
        raise Unauthorized("Session has been revoked")

    structlog.contextvars.bind_contextvars(user_id=str(user_id))
    return user_id

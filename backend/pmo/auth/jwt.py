"""
Session token issuance and verification.

Tokens are HS256 JWTs signed with JWT_SECRET and carried in an HTTP-only
session cookie. Claims:
- sub: user id
- iat: issued at (epoch seconds)
- exp: expiry (epoch seconds)

Verification checks signature and expiry only; resolving `sub` to a live
user is the middleware's job.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

import jwt
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from starlette.responses import Response

from pmo.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


class TokenVerificationError(Exception):
    """Raised when a session token is malformed, forged or expired."""

    def __init__(self, message: str, error_code: str = "invalid_token"):
        self.message = message
        self.error_code = error_code
        super().__init__(message)


class SessionTokenClaims(BaseModel):
    """Claims carried by a session token."""

    model_config = ConfigDict(extra="ignore")

    sub: str = Field(..., min_length=1, description="User id")
    iat: int = Field(..., description="Issued at (epoch seconds)")
    exp: int = Field(..., description="Expiry (epoch seconds)")


@dataclass(frozen=True)
class SessionClaims:
    """Verified claims handed to the rest of the application."""
    user_id: str
    issued_at: int
    expires_at: int


def create_session_token(
    user_id: str,
    expires_in: Optional[int] = None,
    settings: Optional[Settings] = None,
) -> str:
    """Sign a session token for the user."""
    settings = settings or get_settings()
    now = int(time.time())
    ttl = expires_in if expires_in is not None else settings.token_ttl_seconds
    payload = {"sub": user_id, "iat": now, "exp": now + ttl}
    return jwt.encode(payload, settings.jwt_secret, algorithm=ALGORITHM)


def verify_session_token(token: str, settings: Optional[Settings] = None) -> SessionClaims:
    """
    Verify signature and expiry of a session token.

    Raises:
        TokenVerificationError: On any verification failure
    """
    settings = settings or get_settings()
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[ALGORITHM],
            options={"require": ["sub", "exp", "iat"]},
        )
    except jwt.ExpiredSignatureError:
        raise TokenVerificationError("Token has expired", "token_expired")
    except jwt.InvalidTokenError as e:
        logger.debug("Session token rejected", extra={"error": str(e)})
        raise TokenVerificationError("Invalid token")

    try:
        claims = SessionTokenClaims.model_validate(payload)
    except ValidationError:
        raise TokenVerificationError("Invalid token claims")

    return SessionClaims(user_id=claims.sub, issued_at=claims.iat, expires_at=claims.exp)


def set_session_cookie(
    response: Response,
    token: str,
    settings: Optional[Settings] = None,
) -> None:
    """Attach the session cookie: HTTP-only, path-scoped, fixed max age."""
    settings = settings or get_settings()
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=settings.token_ttl_seconds,
        path="/",
        httponly=True,
        secure=settings.is_production,
        # Cross-site frontend in production needs SameSite=None (requires Secure)
        samesite="none" if settings.is_production else "lax",
    )


def clear_session_cookie(response: Response, settings: Optional[Settings] = None) -> None:
    settings = settings or get_settings()
    response.delete_cookie(
        key=settings.session_cookie_name,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="none" if settings.is_production else "lax",
    )

"""
Authentication for signed session tokens.

This module provides:
- Session token issuance/verification (PyJWT, HS256)
- Session cookie helpers
- Authentication middleware and dependencies
"""

from pmo.auth.jwt import (
    SessionClaims,
    TokenVerificationError,
    create_session_token,
    verify_session_token,
    set_session_cookie,
    clear_session_cookie,
)
from pmo.auth.middleware import SessionAuthMiddleware, get_current_user, require_auth

__all__ = [
    "SessionClaims",
    "TokenVerificationError",
    "create_session_token",
    "verify_session_token",
    "set_session_cookie",
    "clear_session_cookie",
    "SessionAuthMiddleware",
    "get_current_user",
    "require_auth",
]

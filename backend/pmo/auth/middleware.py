"""
FastAPI authentication middleware for signed session tokens.

Request Flow:
1. Middleware extracts the token from the session cookie (or a Bearer header)
2. Token signature and expiry verified with PyJWT
3. Subject resolved to a live, active User record
4. user_id and the User are attached to request.state
5. Route handlers access the user via dependency injection

Failures (all 401, minimal body):
- no token                          -> "Unauthorized"
- bad signature / expired / garbage -> "Unauthorized"
- valid token for a deleted user    -> "User no longer exists"

Usage:

    app.add_middleware(SessionAuthMiddleware, settings=settings)

    @router.get("/me")
    async def me(user: User = Depends(get_current_user)):
        return {"id": user.id}
"""

import logging
from typing import Callable, Iterable, Optional

from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

from pmo.auth.jwt import TokenVerificationError, verify_session_token
from pmo.config.settings import Settings, get_settings
from pmo.database.session import get_raw_session
from pmo.models.user import User
from pmo.platform.errors import AuthenticationError

logger = logging.getLogger(__name__)

# Paths that don't require authentication
EXEMPT_PATHS = {
    "/health",
    "/api/health",
    "/docs",
    "/openapi.json",
    "/redoc",
}

# Path prefixes that don't require authentication
EXEMPT_PREFIXES = (
    "/static/",
)


def is_exempt_path(
    path: str,
    exempt_paths: Iterable[str] = EXEMPT_PATHS,
    exempt_prefixes: Iterable[str] = EXEMPT_PREFIXES,
) -> bool:
    """Check if path is exempt from authentication."""
    if path in exempt_paths:
        return True
    return any(path.startswith(prefix) for prefix in exempt_prefixes)


def _unauthorized(detail: str = "Unauthorized", error_code: str = "unauthorized") -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"detail": detail, "error_code": error_code},
    )


class SessionAuthMiddleware(BaseHTTPMiddleware):
    """
    Starlette middleware for session-token authentication.

    Every non-exempt request must carry a valid token; the middleware
    answers 401 itself, so no route can be reached unauthenticated.
    """

    def __init__(
        self,
        app,
        settings: Optional[Settings] = None,
        exempt_paths: Optional[set] = None,
        exempt_prefixes: Optional[tuple] = None,
    ):
        super().__init__(app)
        self._settings = settings or get_settings()
        self._exempt_paths = exempt_paths or EXEMPT_PATHS
        self._exempt_prefixes = exempt_prefixes or EXEMPT_PREFIXES

    def _extract_token(self, request: Request) -> Optional[str]:
        """
        Extract the session token.

        Checks in order:
        1. Session cookie
        2. Authorization header (Bearer token), for API clients and tests
        """
        cookie_token = request.cookies.get(self._settings.session_cookie_name)
        if cookie_token:
            return cookie_token

        auth_header = request.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            return auth_header[7:]

        return None

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        request.state.user_id = None
        request.state.user = None

        if request.method == "OPTIONS" or is_exempt_path(
            path, self._exempt_paths, self._exempt_prefixes
        ):
            return await call_next(request)

        token = self._extract_token(request)
        if not token:
            logger.debug("No session token", extra={"path": path})
            return _unauthorized()

        try:
            claims = verify_session_token(token, self._settings)
        except TokenVerificationError as e:
            logger.warning(
                "Session token verification failed",
                extra={"path": path, "error_code": e.error_code},
            )
            return _unauthorized()

        with get_raw_session() as session:
            user = session.query(User).filter(User.id == claims.user_id).first()
            if user is not None:
                session.expunge(user)

        if user is None or not user.is_active:
            logger.warning(
                "Session token for missing or inactive user",
                extra={"path": path, "user_id": claims.user_id},
            )
            return _unauthorized("User no longer exists", "user_revoked")

        request.state.user_id = user.id
        request.state.user = user

        return await call_next(request)


# =============================================================================
# FastAPI Dependencies
# =============================================================================


def get_current_user(request: Request) -> User:
    """
    FastAPI dependency returning the authenticated User.

    Raises:
        AuthenticationError: If the middleware did not authenticate the request
    """
    user = getattr(request.state, "user", None)
    if user is None:
        raise AuthenticationError()
    return user


def require_auth(request: Request) -> str:
    """FastAPI dependency returning the authenticated user id."""
    return get_current_user(request).id

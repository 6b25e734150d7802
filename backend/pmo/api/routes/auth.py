"""
Session routes.

There is no credential login here: session tokens are minted by
pmo.auth.jwt.create_session_token (seed script, tests, an upstream
identity service) and presented as the session cookie or a Bearer token.
POST /api/auth/session exchanges a presented token for a fresh session
cookie, so browser clients never hold the token in script-readable storage.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel

from pmo.auth.jwt import clear_session_cookie, create_session_token, set_session_cookie
from pmo.auth.middleware import get_current_user
from pmo.models.user import User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


class CurrentUserResponse(BaseModel):
    id: str
    email: str
    name: Optional[str] = None
    role: str
    is_platform_admin: bool


@router.get("/me", response_model=CurrentUserResponse)
async def get_me(user: User = Depends(get_current_user)):
    return CurrentUserResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        role=user.role.value,
        is_platform_admin=user.is_platform_admin,
    )


@router.post("/logout")
async def logout(request: Request, response: Response, user: User = Depends(get_current_user)):
    clear_session_cookie(response, request.app.state.settings)
    logger.info("User logged out", extra={"user_id": user.id})
    return {"success": True}


@router.post("/session")
async def refresh_session(request: Request, response: Response, user: User = Depends(get_current_user)):
    """Issue a fresh session token for the authenticated user as an HTTP-only cookie."""
    settings = request.app.state.settings
    token = create_session_token(user.id, settings=settings)
    set_session_cookie(response, token, settings)
    logger.info("Session cookie issued", extra={"user_id": user.id})
    return {"success": True, "expires_in": settings.token_ttl_seconds}

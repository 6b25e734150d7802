"""
Platform admin routes.

SECURITY: Requires the global platform ADMIN role (User.role), which is
independent of any tenant membership. These routes are tenant-agnostic
and every call is audited by AdminService.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

from pmo.models.user import User
from pmo.platform.rbac import require_platform_admin
from pmo.services.admin_service import AdminService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])


class UserMembership(BaseModel):
    tenant_id: str
    role: str


class AdminUserResponse(BaseModel):
    id: str
    email: str
    name: Optional[str] = None
    role: str
    is_active: bool
    tenants: List[UserMembership]


class AdminUsersListResponse(BaseModel):
    users: List[AdminUserResponse]
    total_count: int


@router.get("/users", response_model=AdminUsersListResponse)
def list_all_users(
    request: Request,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    admin: User = Depends(require_platform_admin),
):
    """List users across every tenant. Audited."""
    users = AdminService(admin, request).list_all_users(limit=limit, offset=offset)
    return AdminUsersListResponse(users=users, total_count=len(users))

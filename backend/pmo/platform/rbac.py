"""
Role-based access control for tenant routes.

CRITICAL SECURITY REQUIREMENTS:
- Roles come only from the membership resolved by TenantResolutionMiddleware
  (request.state.tenant_role), never from client input
- TenantRole.ADMIN satisfies every tenant role requirement
- Platform administration is a separate, global axis (User.role)

Usage:
    from pmo.platform.rbac import require_tenant_role, require_platform_admin

    @router.delete("/members/{user_id}")
    def remove_member(role: TenantRole = Depends(require_tenant_role(TenantRole.OWNER))):
        ...
"""

import logging
from typing import Callable, Iterable, Optional, Union

from fastapi import Depends, Request

from pmo.auth.middleware import get_current_user
from pmo.constants.roles import OVERRIDE_ROLE, TenantRole
from pmo.models.user import User
from pmo.platform.errors import PermissionDeniedError
from pmo.platform.tenant_context import TenantContext

logger = logging.getLogger(__name__)


def _as_role(role: Union[TenantRole, str, None]) -> Optional[TenantRole]:
    if role is None or isinstance(role, TenantRole):
        return role
    try:
        return TenantRole(str(role).upper())
    except ValueError:
        return None


def has_tenant_role(
    role: Union[TenantRole, str, None],
    required: Iterable[Union[TenantRole, str]],
) -> bool:
    """
    Check a membership role against a requirement.

    True if the role is one of `required` or is the ADMIN override.
    """
    actual = _as_role(role)
    if actual is None:
        return False
    if actual == OVERRIDE_ROLE:
        return True
    return actual in {_as_role(r) for r in required}


def get_request_tenant_context(request: Request) -> TenantContext:
    """
    FastAPI dependency returning the tenant context resolved for the request.

    Raises:
        PermissionDeniedError: If no tenant was resolved
    """
    tenant_context = getattr(request.state, "tenant_context", None)
    if tenant_context is None:
        raise PermissionDeniedError()
    return tenant_context


def require_tenant_role(*roles: TenantRole) -> Callable:
    """
    Create a dependency that requires one of the given membership roles.

    ADMIN always passes. Raises PermissionDeniedError (403) otherwise.
    """
    if not roles:
        raise ValueError("require_tenant_role needs at least one role")

    def dependency(request: Request) -> TenantRole:
        role = getattr(request.state, "tenant_role", None)
        if not has_tenant_role(role, roles):
            tenant_context = getattr(request.state, "tenant_context", None)
            logger.warning(
                "Role check failed",
                extra={
                    "tenant_id": tenant_context.tenant_id if tenant_context else None,
                    "user_id": getattr(request.state, "user_id", None),
                    "required_roles": [r.value for r in roles],
                    "user_role": role.value if isinstance(role, TenantRole) else role,
                    "path": request.url.path,
                    "method": request.method,
                },
            )
            raise PermissionDeniedError()
        return role

    return dependency


def require_platform_admin(user: User = Depends(get_current_user)) -> User:
    """Dependency requiring the global platform ADMIN role."""
    if not user.is_platform_admin:
        logger.warning(
            "Platform admin check failed",
            extra={"user_id": user.id},
        )
        raise PermissionDeniedError()
    return user

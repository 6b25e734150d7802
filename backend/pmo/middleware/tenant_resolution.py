"""
Tenant resolution middleware.

Runs after SessionAuthMiddleware and decides which tenant the
authenticated user acts within for this request:

1. Candidate tenant: the X-Tenant-ID header (tenant id or slug) if it
   names one of the user's accepted memberships; otherwise the user's
   only membership; otherwise 403.
2. Membership and tenant are loaded together from the user's own
   memberships. The header value is only matched against those rows, so
   a spoofed id or slug of a foreign tenant never reaches a query and
   produces the same response as an unknown one.
3. Tenant must be ACTIVE, else 403 "Tenant is not active". The test/dev
   relaxation (Settings.allow_missing_tenant_context) lets the request
   continue with no tenant context instead; scoped data access then
   raises NoTenantContextError.
4. TenantContext is established for the rest of the request and the
   membership role is attached to request.state.

SECURITY: Responses never distinguish "tenant does not exist" from
"you are not a member".
"""

import logging
import uuid
from enum import Enum
from typing import Callable, Iterable, List, Optional, Tuple

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

from pmo.auth.middleware import EXEMPT_PATHS, EXEMPT_PREFIXES, is_exempt_path
from pmo.config.settings import Settings, get_settings
from pmo.database.session import get_raw_session
from pmo.models.tenant import Tenant
from pmo.models.tenant_user import TenantUser
from pmo.platform.errors import PermissionDeniedError, TenantInactiveError
from pmo.platform.tenant_context import TenantContext, tenant_context_scope

logger = logging.getLogger(__name__)

TENANT_HEADER = "X-Tenant-ID"

# Authenticated routes that work across tenants and need no resolved tenant
TENANT_AGNOSTIC_PATHS = {
    "/api/tenants/my",
}

TENANT_AGNOSTIC_PREFIXES = (
    "/api/auth/",
    "/api/tenants/switch/",
    "/api/admin/",
)


class TenantViolationType(str, Enum):
    """Types of tenant resolution failures, for log filtering."""
    NO_MEMBERSHIP = "no_membership"
    AMBIGUOUS_TENANT = "ambiguous_tenant"
    HEADER_NOT_MEMBER = "header_not_member"
    TENANT_INACTIVE = "tenant_inactive"


def _log_violation(
    request: Request,
    violation_type: TenantViolationType,
    user_id: Optional[str],
    **extra,
) -> str:
    correlation_id = str(uuid.uuid4())
    logger.warning(
        "Tenant resolution violation",
        extra={
            "violation_type": violation_type.value,
            "user_id": user_id,
            "path": request.url.path,
            "method": request.method,
            "correlation_id": correlation_id,
            **extra,
        },
    )
    return correlation_id


def _load_memberships(user_id: str) -> List[Tuple[TenantUser, Tenant]]:
    """Accepted memberships of the user, with their tenants."""
    with get_raw_session() as session:
        rows = (
            session.query(TenantUser, Tenant)
            .join(Tenant, Tenant.id == TenantUser.tenant_id)
            .filter(
                TenantUser.user_id == user_id,
                TenantUser.accepted_at.isnot(None),
            )
            .all()
        )
        for membership, tenant in rows:
            session.expunge(membership)
            session.expunge(tenant)
    return rows


def select_membership(
    rows: List[Tuple[TenantUser, Tenant]],
    requested: Optional[str],
) -> Tuple[Optional[Tuple[TenantUser, Tenant]], bool]:
    """
    Pick the membership for a request.

    Returns (selected row or None, whether the header was ignored).
    """
    if requested:
        for membership, tenant in rows:
            if requested in (tenant.id, tenant.slug):
                return (membership, tenant), False

    header_ignored = bool(requested)
    if len(rows) == 1:
        return rows[0], header_ignored
    return None, header_ignored


class TenantResolutionMiddleware(BaseHTTPMiddleware):
    """Resolve and establish the tenant context for authenticated requests."""

    def __init__(
        self,
        app,
        settings: Optional[Settings] = None,
        agnostic_paths: Optional[Iterable[str]] = None,
        agnostic_prefixes: Optional[tuple] = None,
    ):
        super().__init__(app)
        self._settings = settings or get_settings()
        self._agnostic_paths = set(agnostic_paths or TENANT_AGNOSTIC_PATHS)
        self._agnostic_prefixes = agnostic_prefixes or TENANT_AGNOSTIC_PREFIXES

    def _skips_resolution(self, request: Request) -> bool:
        path = request.url.path
        if request.method == "OPTIONS":
            return True
        if is_exempt_path(path, EXEMPT_PATHS, EXEMPT_PREFIXES):
            return True
        return is_exempt_path(path, self._agnostic_paths, self._agnostic_prefixes)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request.state.tenant_context = None
        request.state.tenant_role = None
        request.state.tenant_membership = None

        if self._skips_resolution(request):
            return await call_next(request)

        user_id = getattr(request.state, "user_id", None)
        if not user_id:
            # Auth middleware answers 401 before we get here; fail closed anyway
            return JSONResponse(status_code=401, content={"detail": "Unauthorized", "error_code": "unauthorized"})

        requested = request.headers.get(TENANT_HEADER)
        rows = _load_memberships(user_id)
        selected, header_ignored = select_membership(rows, requested)

        if header_ignored:
            _log_violation(
                request,
                TenantViolationType.HEADER_NOT_MEMBER,
                user_id,
                requested_tenant=requested,
                fallback_used=selected is not None,
            )

        if selected is None:
            violation = (
                TenantViolationType.NO_MEMBERSHIP if not rows
                else TenantViolationType.AMBIGUOUS_TENANT
            )
            _log_violation(request, violation, user_id, membership_count=len(rows))
            error = PermissionDeniedError()
            return JSONResponse(status_code=error.status_code, content=error.to_dict())

        membership, tenant = selected

        if not tenant.is_active:
            _log_violation(
                request,
                TenantViolationType.TENANT_INACTIVE,
                user_id,
                tenant_id=tenant.id,
                tenant_status=tenant.status.value,
            )
            if self._settings.allow_missing_tenant_context:
                logger.warning(
                    "Proceeding without tenant context (relaxed mode)",
                    extra={"tenant_id": tenant.id, "path": request.url.path},
                )
                return await call_next(request)
            error = TenantInactiveError()
            return JSONResponse(status_code=error.status_code, content=error.to_dict())

        context = TenantContext(
            tenant_id=tenant.id,
            tenant_slug=tenant.slug,
            tenant_plan=tenant.plan.value if tenant.plan else None,
        )
        request.state.tenant_context = context
        request.state.tenant_role = membership.role
        request.state.tenant_membership = membership

        logger.debug(
            "Tenant context established",
            extra={
                "tenant_id": tenant.id,
                "user_id": user_id,
                "role": membership.role.value,
                "path": request.url.path,
            },
        )

        with tenant_context_scope(context):
            response = await call_next(request)

        response.headers[TENANT_HEADER] = tenant.id
        return response

"""
Tenant API routes: membership listing, tenant switching and member management.

Provides endpoints for:
- Listing the tenants the current user can act within
- Switching the active tenant (audited)
- Reading the resolved tenant
- Listing, adding, re-roling and removing members of the current tenant

SECURITY:
- All endpoints require authentication
- /my and /switch are tenant-agnostic; everything under /current acts
  only on the tenant resolved by TenantResolutionMiddleware
- Member management requires OWNER (or the ADMIN override)
- A tenant always keeps at least one OWNER
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, Field

from pmo.api.dependencies.services import get_tenant_service
from pmo.auth.middleware import get_current_user
from pmo.constants.roles import MANAGER_ROLES, TenantRole
from pmo.models.user import User
from pmo.platform.audit import AuditAction, AuditOutcome, build_request_event, write_audit_log_sync
from pmo.platform.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from pmo.platform.rbac import get_request_tenant_context, require_tenant_role
from pmo.platform.tenant_context import TenantContext
from pmo.services.tenant_service import (
    DuplicateMembershipError,
    LastOwnerError,
    MembershipNotFoundError,
    TenantService,
    UserNotFoundError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tenants", tags=["tenants"])


# --- Request/Response Models ---


class TenantSummary(BaseModel):
    """A tenant the user belongs to."""
    id: str
    name: str
    slug: str
    plan: str
    status: str
    role: str


class MyTenantsResponse(BaseModel):
    tenants: List[TenantSummary]
    total_count: int


class SwitchTenantResponse(BaseModel):
    """Send tenant_id back as X-Tenant-ID on subsequent requests."""
    tenant_id: str
    slug: str
    role: str


class CurrentTenantResponse(BaseModel):
    id: str
    name: str
    slug: str
    plan: str
    status: str
    role: Optional[str] = None
    trial_ends_at: Optional[str] = None


class TenantMemberResponse(BaseModel):
    """Information about a tenant member."""
    user_id: str
    email: str
    name: Optional[str] = None
    role: str
    invited_at: Optional[str] = None
    accepted_at: Optional[str] = None


class TenantMembersListResponse(BaseModel):
    members: List[TenantMemberResponse]
    total_count: int


class AddMemberRequest(BaseModel):
    """Add an existing user to the current tenant."""
    email: str = Field(..., min_length=3, max_length=255, description="Email of an existing user")
    role: TenantRole = Field(default=TenantRole.MEMBER, description="Role to assign")


class UpdateRoleRequest(BaseModel):
    role: TenantRole = Field(..., description="New role to assign")


# --- Helper Functions ---


def _isoformat(value) -> Optional[str]:
    return value.isoformat() if value else None


def _member_response(membership, user: User) -> TenantMemberResponse:
    return TenantMemberResponse(
        user_id=user.id,
        email=user.email,
        name=user.name,
        role=membership.role.value,
        invited_at=_isoformat(membership.invited_at),
        accepted_at=_isoformat(membership.accepted_at),
    )


def _audit(service: TenantService, request: Request, action: AuditAction, **kwargs) -> None:
    write_audit_log_sync(service.db, build_request_event(request, action, **kwargs))


# --- Tenant-agnostic endpoints ---


@router.get("/my", response_model=MyTenantsResponse)
def list_my_tenants(
    user: User = Depends(get_current_user),
    service: TenantService = Depends(get_tenant_service),
):
    """List the ACTIVE tenants the current user is a member of, with role."""
    tenants = [
        TenantSummary(
            id=tenant.id,
            name=tenant.name,
            slug=tenant.slug,
            plan=tenant.plan.value,
            status=tenant.status.value,
            role=membership.role.value,
        )
        for tenant, membership in service.get_user_tenants(user.id)
    ]
    return MyTenantsResponse(tenants=tenants, total_count=len(tenants))


@router.post("/switch/{tenant_id}", response_model=SwitchTenantResponse)
def switch_tenant(
    tenant_id: str,
    request: Request,
    user: User = Depends(get_current_user),
    service: TenantService = Depends(get_tenant_service),
):
    """
    Validate a tenant switch.

    Succeeds only for an ACTIVE tenant the user has accepted membership
    in. Unknown, foreign and inactive tenants all answer 403 Forbidden.
    """
    selected = None
    for tenant, membership in service.get_user_tenants(user.id):
        if tenant.id == tenant_id:
            selected = (tenant, membership)
            break

    if selected is None:
        logger.warning(
            "Tenant switch denied",
            extra={"user_id": user.id, "requested_tenant": tenant_id},
        )
        _audit(
            service,
            request,
            AuditAction.TENANT_SWITCH,
            user_id=user.id,
            resource_type="tenant",
            resource_id=tenant_id,
            outcome=AuditOutcome.DENIED,
        )
        raise PermissionDeniedError()

    tenant, membership = selected
    _audit(
        service,
        request,
        AuditAction.TENANT_SWITCH,
        tenant_id=tenant.id,
        user_id=user.id,
        resource_type="tenant",
        resource_id=tenant.id,
        metadata={"role": membership.role.value},
    )
    logger.info("Tenant switched", extra={"tenant_id": tenant.id, "user_id": user.id})

    return SwitchTenantResponse(tenant_id=tenant.id, slug=tenant.slug, role=membership.role.value)


# --- Current tenant endpoints ---


@router.get("/current", response_model=CurrentTenantResponse)
def get_current_tenant(
    request: Request,
    tenant_context: TenantContext = Depends(get_request_tenant_context),
    service: TenantService = Depends(get_tenant_service),
):
    tenant = service.get_tenant_by_id(tenant_context.tenant_id)
    if tenant is None:
        raise NotFoundError("Tenant")
    role = getattr(request.state, "tenant_role", None)
    return CurrentTenantResponse(
        id=tenant.id,
        name=tenant.name,
        slug=tenant.slug,
        plan=tenant.plan.value,
        status=tenant.status.value,
        role=role.value if role else None,
        trial_ends_at=_isoformat(tenant.trial_ends_at),
    )


@router.get("/current/members", response_model=TenantMembersListResponse)
def list_members(
    tenant_context: TenantContext = Depends(get_request_tenant_context),
    _role: TenantRole = Depends(require_tenant_role(*MANAGER_ROLES)),
    service: TenantService = Depends(get_tenant_service),
):
    members = [
        _member_response(membership, user)
        for membership, user in service.list_members(tenant_context.tenant_id)
    ]
    return TenantMembersListResponse(members=members, total_count=len(members))


@router.post(
    "/current/members",
    response_model=TenantMemberResponse,
    status_code=status.HTTP_201_CREATED,
)
def add_member(
    body: AddMemberRequest,
    request: Request,
    tenant_context: TenantContext = Depends(get_request_tenant_context),
    _role: TenantRole = Depends(require_tenant_role(*MANAGER_ROLES)),
    service: TenantService = Depends(get_tenant_service),
):
    """Add an existing user to the current tenant with a role."""
    try:
        membership = service.add_user_to_tenant(tenant_context.tenant_id, body.email, body.role)
    except UserNotFoundError:
        raise NotFoundError("User")
    except DuplicateMembershipError:
        raise ConflictError("User is already a member")

    _audit(
        service,
        request,
        AuditAction.TENANT_MEMBER_ADDED,
        tenant_id=tenant_context.tenant_id,
        user_id=request.state.user_id,
        resource_type="tenant_user",
        resource_id=membership.user_id,
        metadata={"role": body.role.value},
    )
    return _member_response(membership, membership.user)


@router.patch("/current/members/{user_id}", response_model=TenantMemberResponse)
def update_member_role(
    user_id: str,
    body: UpdateRoleRequest,
    request: Request,
    tenant_context: TenantContext = Depends(get_request_tenant_context),
    _role: TenantRole = Depends(require_tenant_role(*MANAGER_ROLES)),
    service: TenantService = Depends(get_tenant_service),
):
    try:
        membership = service.update_user_role(tenant_context.tenant_id, user_id, body.role)
    except MembershipNotFoundError:
        raise NotFoundError("Member")
    except LastOwnerError:
        raise ValidationError("Cannot demote the last owner")

    _audit(
        service,
        request,
        AuditAction.TENANT_MEMBER_ROLE_CHANGED,
        tenant_id=tenant_context.tenant_id,
        user_id=request.state.user_id,
        resource_type="tenant_user",
        resource_id=user_id,
        metadata={"role": body.role.value},
    )
    return _member_response(membership, membership.user)


@router.delete("/current/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_member(
    user_id: str,
    request: Request,
    tenant_context: TenantContext = Depends(get_request_tenant_context),
    _role: TenantRole = Depends(require_tenant_role(*MANAGER_ROLES)),
    service: TenantService = Depends(get_tenant_service),
):
    try:
        service.remove_user_from_tenant(tenant_context.tenant_id, user_id)
    except MembershipNotFoundError:
        raise NotFoundError("Member")
    except LastOwnerError:
        raise ValidationError("Cannot remove the last owner")

    _audit(
        service,
        request,
        AuditAction.TENANT_MEMBER_REMOVED,
        tenant_id=tenant_context.tenant_id,
        user_id=request.state.user_id,
        resource_type="tenant_user",
        resource_id=user_id,
    )

"""
Module API routes.

GET returns the current tenant's effective module set. Switching a module
or starting a trial requires the tenant ADMIN role and only ever writes
the resolved tenant's rows.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from pmo.api.dependencies.services import get_module_service
from pmo.constants.roles import TenantRole
from pmo.models.tenant_module_config import ModuleTier, TenantModuleConfig
from pmo.platform.audit import AuditAction, build_request_event, write_audit_log_sync
from pmo.platform.errors import NotFoundError, ValidationError
from pmo.platform.rbac import get_request_tenant_context, require_tenant_role
from pmo.platform.tenant_context import TenantContext
from pmo.services.module_service import CoreModuleError, ModuleService, UnknownModuleError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/modules", tags=["modules"])


class ModuleInfo(BaseModel):
    id: str
    label: str
    core: bool
    enabled: bool


class TenantModulesResponse(BaseModel):
    tenant_id: str
    enabled_modules: List[str]
    modules: List[ModuleInfo]


class SetModuleRequest(BaseModel):
    enabled: bool
    tier: Optional[ModuleTier] = None


class StartTrialRequest(BaseModel):
    days: int = Field(default=14, ge=1, le=90)


class ModuleConfigResponse(BaseModel):
    module_id: str
    enabled: bool
    tier: str
    trial_ends_at: Optional[str] = None


def _config_response(row: TenantModuleConfig) -> ModuleConfigResponse:
    return ModuleConfigResponse(
        module_id=row.module_id,
        enabled=row.enabled,
        tier=row.tier.value,
        trial_ends_at=row.trial_ends_at.isoformat() if row.trial_ends_at else None,
    )


@router.get("", response_model=TenantModulesResponse)
def get_tenant_modules(
    tenant_context: TenantContext = Depends(get_request_tenant_context),
    service: ModuleService = Depends(get_module_service),
):
    enabled = service.get_enabled_modules(tenant_context.tenant_id)
    modules = [
        ModuleInfo(
            id=definition.id,
            label=definition.label,
            core=definition.core,
            enabled=definition.id in enabled,
        )
        for definition in sorted(service.catalog.definitions.values(), key=lambda d: d.id)
    ]
    return TenantModulesResponse(
        tenant_id=tenant_context.tenant_id,
        enabled_modules=sorted(enabled),
        modules=modules,
    )


@router.put("/{module_id}", response_model=ModuleConfigResponse)
def set_tenant_module(
    module_id: str,
    body: SetModuleRequest,
    request: Request,
    tenant_context: TenantContext = Depends(get_request_tenant_context),
    _role: TenantRole = Depends(require_tenant_role(TenantRole.ADMIN)),
    service: ModuleService = Depends(get_module_service),
):
    try:
        row = service.set_tenant_module(tenant_context.tenant_id, module_id, body.enabled, body.tier)
    except UnknownModuleError:
        raise NotFoundError("Module")
    except CoreModuleError:
        raise ValidationError("Core modules cannot be disabled")

    write_audit_log_sync(
        service.db,
        build_request_event(
            request,
            AuditAction.MODULE_CONFIG_CHANGED,
            tenant_id=tenant_context.tenant_id,
            user_id=request.state.user_id,
            resource_type="module",
            resource_id=row.module_id,
            metadata={"enabled": body.enabled, "tier": row.tier.value},
        ),
    )
    return _config_response(row)


@router.post("/{module_id}/trial", response_model=ModuleConfigResponse)
def start_module_trial(
    module_id: str,
    request: Request,
    body: Optional[StartTrialRequest] = None,
    tenant_context: TenantContext = Depends(get_request_tenant_context),
    _role: TenantRole = Depends(require_tenant_role(TenantRole.ADMIN)),
    service: ModuleService = Depends(get_module_service),
):
    days = body.days if body else StartTrialRequest().days
    try:
        row = service.start_module_trial(tenant_context.tenant_id, module_id, days)
    except UnknownModuleError:
        raise NotFoundError("Module")

    write_audit_log_sync(
        service.db,
        build_request_event(
            request,
            AuditAction.MODULE_TRIAL_STARTED,
            tenant_id=tenant_context.tenant_id,
            user_id=request.state.user_id,
            resource_type="module",
            resource_id=row.module_id,
            metadata={"days": days},
        ),
    )
    return _config_response(row)

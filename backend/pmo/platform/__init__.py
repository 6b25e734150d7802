"""
Platform primitives: tenant context, errors, RBAC, modules and audit.

Only the dependency-free pieces are re-exported here; import rbac, modules
and audit from their own modules.
"""

from pmo.platform.tenant_context import (
    TenantContext,
    NoTenantContextError,
    get_tenant_context,
    get_tenant_id,
    get_current_context_or_none,
    has_tenant_context,
    run_with_tenant_context,
    run_with_tenant_context_async,
    tenant_context_scope,
)
from pmo.platform.errors import (
    AppError,
    AuthenticationError,
    PermissionDeniedError,
    TenantInactiveError,
    ModuleDisabledError,
    NotFoundError,
    ValidationError,
    ConflictError,
    TenantIsolationError,
)

__all__ = [
    "TenantContext",
    "NoTenantContextError",
    "get_tenant_context",
    "get_tenant_id",
    "get_current_context_or_none",
    "has_tenant_context",
    "run_with_tenant_context",
    "run_with_tenant_context_async",
    "tenant_context_scope",
    "AppError",
    "AuthenticationError",
    "PermissionDeniedError",
    "TenantInactiveError",
    "ModuleDisabledError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "TenantIsolationError",
]

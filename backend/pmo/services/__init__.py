"""
Services for tenant provisioning, module enablement and platform administration.

These run on raw sessions and take tenant ids explicitly. Route handlers
reach tenant-scoped business records through ScopedDataClient instead.
"""

from pmo.services.tenant_service import (
    TenantService,
    TenantServiceError,
    TenantNotFoundError,
    UserNotFoundError,
    DuplicateMembershipError,
    MembershipNotFoundError,
    LastOwnerError,
    generate_slug,
)
from pmo.services.module_service import (
    ModuleService,
    ModuleServiceError,
    UnknownModuleError,
    CoreModuleError,
)
from pmo.services.admin_service import AdminService

__all__ = [
    "TenantService",
    "TenantServiceError",
    "TenantNotFoundError",
    "UserNotFoundError",
    "DuplicateMembershipError",
    "MembershipNotFoundError",
    "LastOwnerError",
    "generate_slug",
    "ModuleService",
    "ModuleServiceError",
    "UnknownModuleError",
    "CoreModuleError",
    "AdminService",
]

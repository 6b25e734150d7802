"""
Middleware package for request-scoped tenancy.

Provides:
- TenantResolutionMiddleware: resolves the acting tenant and establishes the tenant context
"""

from pmo.middleware.tenant_resolution import (
    TENANT_HEADER,
    TenantResolutionMiddleware,
    TenantViolationType,
)

__all__ = [
    "TENANT_HEADER",
    "TenantResolutionMiddleware",
    "TenantViolationType",
]

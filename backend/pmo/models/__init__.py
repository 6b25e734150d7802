"""
Database models for the PMO platform.

All models follow strict tenant isolation patterns.
Tenant-scoped models inherit from TenantScopedMixin.
"""

from pmo.models.base import TimestampMixin, TenantScopedMixin, generate_uuid, is_tenant_scoped
# Identity and tenancy
from pmo.models.tenant import Tenant, TenantPlan, TenantStatus
from pmo.models.user import User
from pmo.models.tenant_user import TenantUser
from pmo.models.tenant_module_config import TenantModuleConfig, ModuleTier
# Tenant-scoped business records
from pmo.models.client import Client
from pmo.models.project import Project, ProjectStatus
from pmo.models.account import Account, AccountType
from pmo.models.expense import Expense

__all__ = [
    "TimestampMixin",
    "TenantScopedMixin",
    "generate_uuid",
    "is_tenant_scoped",
    "Tenant",
    "TenantPlan",
    "TenantStatus",
    "User",
    "TenantUser",
    "TenantModuleConfig",
    "ModuleTier",
    "Client",
    "Project",
    "ProjectStatus",
    "Account",
    "AccountType",
    "Expense",
]

"""
API Dependencies module.

Provides shared FastAPI dependencies for route handlers.
"""

from pmo.api.dependencies.modules import require_module
from pmo.api.dependencies.services import get_module_service, get_tenant_service

__all__ = [
    "require_module",
    "get_module_service",
    "get_tenant_service",
]

"""
Service dependencies for tenant-administration routes.

Membership and module switches live in non-scoped tables, so these
services run on raw sessions. Routes receive the service, never the
session, and pass it the tenant id from the resolved context.
"""

from typing import Generator

from fastapi import Depends

from pmo.database.session import get_raw_session
from pmo.platform.modules import ModuleConfig, get_module_config
from pmo.services.module_service import ModuleService
from pmo.services.tenant_service import TenantService


def get_tenant_service() -> Generator[TenantService, None, None]:
    with get_raw_session() as session:
        yield TenantService(session)


def get_module_service(
    config: ModuleConfig = Depends(get_module_config),
) -> Generator[ModuleService, None, None]:
    with get_raw_session() as session:
        yield ModuleService(session, config)

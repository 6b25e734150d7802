"""
Module gating dependencies.

Provides reusable FastAPI dependencies that reject requests to feature
modules that are switched off, for the process or for the tenant.
"""

import logging
from typing import Callable

from fastapi import Request

from pmo.database.session import get_raw_session
from pmo.platform.errors import ModuleDisabledError
from pmo.platform.modules import get_module_config
from pmo.services.module_service import ModuleService

logger = logging.getLogger(__name__)


def require_module(module_id: str) -> Callable:
    """
    Factory creating a dependency that requires `module_id` to be enabled.

    Checks, in order:
    1. the process ModuleConfig
    2. the tenant's effective module set, when a tenant was resolved

    Raises ModuleDisabledError (403) if either check fails. Without a
    tenant context only the process check runs; scoped data access then
    fails on its own.
    """

    def check_module(request: Request) -> None:
        config = get_module_config(request)
        if not config.is_enabled(module_id):
            logger.warning(
                "Module disabled for process",
                extra={"module_id": module_id, "path": request.url.path},
            )
            raise ModuleDisabledError()

        tenant_context = getattr(request.state, "tenant_context", None)
        if tenant_context is None:
            return

        with get_raw_session() as session:
            enabled = ModuleService(session, config).is_module_enabled(
                tenant_context.tenant_id, module_id
            )
        if not enabled:
            logger.warning(
                "Module disabled for tenant",
                extra={
                    "module_id": module_id,
                    "tenant_id": tenant_context.tenant_id,
                    "path": request.url.path,
                },
            )
            raise ModuleDisabledError()

    return check_module

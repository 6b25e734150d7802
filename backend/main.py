"""
FastAPI application entry point for the PMO platform.

Multi-tenant enforcement:
- SessionAuthMiddleware authenticates every non-exempt request
- TenantResolutionMiddleware resolves the tenant and establishes the
  tenant context for the rest of the request
- route dependencies gate roles and modules
- ScopedDataClient constrains all business-data access to the tenant
"""

import os
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import inspect

from pmo.auth.middleware import SessionAuthMiddleware
from pmo.config.settings import Settings, get_settings
from pmo.database.session import get_engine
from pmo.middleware.tenant_resolution import TenantResolutionMiddleware
from pmo.platform.errors import register_error_handlers
from pmo.platform.modules import ModuleConfig, include_module_router
from pmo.api.routes import (
    accounts,
    admin_users,
    auth,
    clients,
    expenses,
    health,
    modules,
    projects,
    tenants,
)

# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

REQUIRED_TABLES = ("tenants", "users", "tenant_users", "tenant_module_configs", "audit_logs")

# (router module, module id) for feature areas mounted only when enabled
MODULE_ROUTERS = (
    (clients, "clients"),
    (projects, "projects"),
    (accounts, "crmAccounts"),
    (expenses, "financeTracking"),
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    settings: Settings = app.state.settings
    logger.info(
        "Starting PMO API",
        extra={
            "env": settings.env,
            "enabled_modules": sorted(app.state.module_config.enabled_modules),
        },
    )

    app.state.schema_ready = False
    try:
        existing = set(inspect(get_engine()).get_table_names())
        missing = [t for t in REQUIRED_TABLES if t not in existing]
        app.state.schema_ready = not missing
        if missing:
            logger.error("Database schema incomplete", extra={"missing_tables": missing})
        else:
            logger.info("Database schema readiness check passed")
    except Exception as e:
        logger.exception("Database readiness check errored", extra={"error": str(e)})

    yield

    # Shutdown
    logger.info("Shutting down PMO API")


def create_app(
    settings: Optional[Settings] = None,
    module_config: Optional[ModuleConfig] = None,
) -> FastAPI:
    """
    Build the application.

    Settings are validated here, so a production process with the test
    relaxation enabled fails before it can serve a request.
    """
    settings = (settings or get_settings()).validate()
    module_config = module_config or ModuleConfig.from_string(settings.enabled_modules)

    app = FastAPI(
        title="PMO API",
        description="Multi-tenant PMO/CRM platform with strict tenant isolation",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.module_config = module_config

    # Starlette runs the last added middleware first:
    # CORS -> authentication -> tenant resolution -> routes
    app.add_middleware(TenantResolutionMiddleware, settings=settings)
    app.add_middleware(SessionAuthMiddleware, settings=settings)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Tenant-ID"],
    )

    register_error_handlers(app)

    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(tenants.router)
    app.include_router(modules.router)
    app.include_router(admin_users.router)

    for route_module, module_id in MODULE_ROUTERS:
        include_module_router(app, route_module.router, module_id, module_config)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=port,
        reload=os.getenv("ENV") == "development"
    )

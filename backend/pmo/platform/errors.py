"""
Application error taxonomy and HTTP mapping.

Expected control-flow failures (authentication, authorization, not found)
derive from AppError and are rendered with a minimal body:

    {"detail": "Forbidden", "error_code": "forbidden"}

Bodies are generic. They never say whether a record exists in another
tenant or why a membership check failed.

Programmer errors (NoTenantContextError, TenantIsolationError) are NOT
AppErrors. They reach the catch-all handler and surface as 500.
"""

import logging
import uuid
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from pmo.platform.tenant_context import NoTenantContextError

logger = logging.getLogger(__name__)


def generate_correlation_id() -> str:
    """Generate a correlation id for error and audit tracing."""
    return str(uuid.uuid4())


class AppError(Exception):
    """Base class for errors mapped to an HTTP response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "internal_error"
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Optional[dict] = None):
        self.message = message or self.default_message
        # Logged only, never returned to the client
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "error_code": self.error_code}


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "validation_error"
    default_message = "Invalid request"


class AuthenticationError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "unauthorized"
    default_message = "Unauthorized"


class PermissionDeniedError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "forbidden"
    default_message = "Forbidden"


class TenantInactiveError(PermissionDeniedError):
    error_code = "tenant_inactive"
    default_message = "Tenant is not active"


class ModuleDisabledError(PermissionDeniedError):
    error_code = "module_disabled"
    default_message = "Module not enabled"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "not_found"
    default_message = "Not found"

    def __init__(self, resource: Optional[str] = None, details: Optional[dict] = None):
        message = f"{resource} not found" if resource else None
        super().__init__(message, details)


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    error_code = "conflict"
    default_message = "Conflict"


class TenantIsolationError(RuntimeError):
    """Raised when a write would move or touch a record outside its tenant."""
    pass


def _tenant_id_for_log(request: Request) -> str:
    tenant_context = getattr(request.state, "tenant_context", None)
    return tenant_context.tenant_id if tenant_context else "unknown"


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    logger.info(
        "Request rejected",
        extra={
            "path": request.url.path,
            "status_code": exc.status_code,
            "error_code": exc.error_code,
            "tenant_id": _tenant_id_for_log(request),
            **exc.details,
        },
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    correlation_id = generate_correlation_id()
    if isinstance(exc, NoTenantContextError):
        message = "Tenant-scoped data access without tenant context"
    elif isinstance(exc, TenantIsolationError):
        message = "Tenant isolation violation"
    else:
        message = "Unhandled exception"

    logger.error(
        message,
        extra={
            "tenant_id": _tenant_id_for_log(request),
            "error": str(exc),
            "error_type": type(exc).__name__,
            "path": request.url.path,
            "correlation_id": correlation_id,
        },
        exc_info=exc,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "error_code": "internal_error",
            "correlation_id": correlation_id,
        },
    )


def register_error_handlers(app: FastAPI) -> None:
    """Install the AppError mapping and the catch-all 500 handler."""
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

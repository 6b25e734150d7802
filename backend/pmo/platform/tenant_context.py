"""
Execution-scoped tenant context store.

Holds the tenant identity of the current logical operation (one HTTP
request, one background job, one test-harness call) in a ContextVar.
asyncio copies the current context into every task it creates and
Starlette copies it into threadpool calls, so any code invoked during the
operation can read the tenant without it being passed through signatures,
and concurrent operations never observe each other's tenant.

CRITICAL: Never set the variable directly. Use run_with_tenant_context,
run_with_tenant_context_async or tenant_context_scope so the previous
context is always restored.

Usage:
    from pmo.platform.tenant_context import TenantContext, run_with_tenant_context

    ctx = TenantContext(tenant_id=tenant.id, tenant_slug=tenant.slug, tenant_plan="TRIAL")
    projects = run_with_tenant_context(ctx, repo.find_many)

    async def job():
        tenant_id = get_tenant_id()
        ...

    await run_with_tenant_context_async(ctx, job)
"""

from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterator, Optional, TypeVar

R = TypeVar("R")


class NoTenantContextError(RuntimeError):
    """
    Raised when tenant-scoped code runs without an active tenant context.

    This is a programming error (a route or job missing tenant resolution),
    not an authorization failure. It must propagate and surface as a 500.
    """

    def __init__(self, message: str = "No tenant context is active"):
        super().__init__(message)


@dataclass(frozen=True)
class TenantContext:
    """Tenant identity for one logical operation."""

    tenant_id: str
    tenant_slug: Optional[str] = None
    tenant_plan: Optional[str] = None

    def __post_init__(self):
        if not self.tenant_id:
            raise ValueError("tenant_id cannot be empty")


_current_tenant: ContextVar[Optional[TenantContext]] = ContextVar(
    "pmo_current_tenant", default=None
)


@contextmanager
def tenant_context_scope(context: TenantContext) -> Iterator[TenantContext]:
    """
    Activate a tenant context for the enclosed block.

    Nested scopes shadow the outer one; the outer context is restored on
    exit, including when the block raises.
    """
    if not isinstance(context, TenantContext):
        raise TypeError("context must be a TenantContext")

    token = _current_tenant.set(context)
    try:
        yield context
    finally:
        _current_tenant.reset(token)


def run_with_tenant_context(
    context: TenantContext,
    fn: Callable[..., R],
    *args: Any,
    **kwargs: Any,
) -> R:
    """Run a synchronous callable with the given tenant context active."""
    with tenant_context_scope(context):
        return fn(*args, **kwargs)


async def run_with_tenant_context_async(
    context: TenantContext,
    fn: Callable[..., Awaitable[R]],
    *args: Any,
    **kwargs: Any,
) -> R:
    """
    Await a coroutine function with the given tenant context active.

    Tasks created inside fn inherit the context. Suspensions inside fn do
    not expose the context to other tasks running in the meantime.
    """
    with tenant_context_scope(context):
        return await fn(*args, **kwargs)


def get_current_context_or_none() -> Optional[TenantContext]:
    """Return the active tenant context, or None."""
    return _current_tenant.get()


def get_tenant_context() -> TenantContext:
    """
    Return the active tenant context.

    Raises:
        NoTenantContextError: If no context is active
    """
    context = _current_tenant.get()
    if context is None:
        raise NoTenantContextError()
    return context


def get_tenant_id() -> str:
    """
    Return the active tenant id.

    Raises:
        NoTenantContextError: If no context is active
    """
    return get_tenant_context().tenant_id


def has_tenant_context() -> bool:
    """Check whether a tenant context is active. Never raises."""
    return _current_tenant.get() is not None

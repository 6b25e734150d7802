"""
ORM-level tenant interception for tenant-scoped sessions.

Second line of defense under the repositories: even a hand-written query
on a scoped session cannot see or modify another tenant's rows.

On sessions whose info carries SCOPED_SESSION_INFO_KEY:
- SELECT/UPDATE/DELETE touching a TenantScopedMixin model require an
  active tenant context and get `tenant_id == <current>` attached through
  with_loader_criteria (joins, relationship loads and aliases included)
- ORM bulk INSERT of scoped models is refused; use the repository
- flush pins tenant_id on new scoped objects to the current tenant and
  refuses to flush scoped objects whose tenant_id was changed or belongs
  to another tenant

Raw sessions (no info marker) are untouched.
"""

import logging

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session, ORMExecuteState, with_loader_criteria

from pmo.models.base import TenantScopedMixin, is_tenant_scoped
from pmo.platform.errors import TenantIsolationError
from pmo.platform.tenant_context import get_tenant_id

logger = logging.getLogger(__name__)

SCOPED_SESSION_INFO_KEY = "tenant_scoped"

_installed = False


def is_scoped_session(session: Session) -> bool:
    return bool(session.info.get(SCOPED_SESSION_INFO_KEY))


def _touches_scoped_model(orm_execute_state: ORMExecuteState) -> bool:
    return any(
        issubclass(mapper.class_, TenantScopedMixin)
        for mapper in orm_execute_state.all_mappers
    )


def _scope_orm_execute(orm_execute_state: ORMExecuteState) -> None:
    if not is_scoped_session(orm_execute_state.session):
        return
    # Attribute refresh of an identity already loaded through a scoped query
    if orm_execute_state.is_column_load:
        return
    if not _touches_scoped_model(orm_execute_state):
        return

    if orm_execute_state.is_insert:
        raise TenantIsolationError(
            "Bulk INSERT of tenant-scoped models is not allowed on a scoped session"
        )

    # Raises NoTenantContextError: never run a scoped statement unfiltered
    tenant_id = get_tenant_id()

    if (
        orm_execute_state.is_select
        or orm_execute_state.is_update
        or orm_execute_state.is_delete
    ):
        orm_execute_state.statement = orm_execute_state.statement.options(
            with_loader_criteria(
                TenantScopedMixin,
                lambda cls: cls.tenant_id == tenant_id,
                include_aliases=True,
            )
        )


def _pin_tenant_on_flush(session: Session, flush_context, instances) -> None:
    if not is_scoped_session(session):
        return

    new_scoped = [obj for obj in session.new if is_tenant_scoped(obj)]
    dirty_scoped = [obj for obj in session.dirty if is_tenant_scoped(obj)]
    deleted_scoped = [obj for obj in session.deleted if is_tenant_scoped(obj)]
    if not (new_scoped or dirty_scoped or deleted_scoped):
        return

    tenant_id = get_tenant_id()

    for obj in new_scoped:
        if obj.tenant_id is not None and obj.tenant_id != tenant_id:
            logger.warning(
                "Overriding caller-supplied tenant_id on insert",
                extra={
                    "entity_type": type(obj).__name__,
                    "tenant_id": tenant_id,
                    "supplied_tenant_id": obj.tenant_id,
                },
            )
        obj.tenant_id = tenant_id

    for obj in dirty_scoped:
        history = inspect(obj).attrs.tenant_id.history
        if history.deleted:
            raise TenantIsolationError(
                f"tenant_id of {type(obj).__name__} is immutable"
            )
        if obj.tenant_id != tenant_id:
            raise TenantIsolationError(
                f"{type(obj).__name__} belongs to a different tenant"
            )

    for obj in deleted_scoped:
        if obj.tenant_id != tenant_id:
            raise TenantIsolationError(
                f"{type(obj).__name__} belongs to a different tenant"
            )


def install_tenant_scoping() -> None:
    """Register the Session event listeners once per process."""
    global _installed
    if _installed:
        return
    event.listen(Session, "do_orm_execute", _scope_orm_execute)
    event.listen(Session, "before_flush", _pin_tenant_on_flush)
    _installed = True
    logger.info("Tenant scoping listeners installed")

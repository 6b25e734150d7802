"""
Base repository with strict tenant isolation enforcement.

CRITICAL: Every operation reads the tenant from the active tenant context
and conjoins `tenant_id == <current>` into the SQL it issues. There is no
way to pass a tenant id in: a `tenant_id` key in a filter or payload is
dropped (filters) or overwritten (payloads).

Operation semantics:
- reads (find_*, count, exists, aggregate, group_by): filtered in SQL, so
  rows, counts and pagination never reflect other tenants
- create / create_many: tenant_id forced to the current tenant
- update / delete of a record owned by another tenant raises
  RecordNotFoundError, exactly like a nonexistent id
- no active tenant context: NoTenantContextError before any SQL is issued
"""

import logging
from typing import Any, Generic, Iterable, List, Mapping, Optional, Sequence, TypeVar

from sqlalchemy import func, inspect
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from pmo.db_base import Base
from pmo.models.base import is_tenant_scoped
from pmo.platform.errors import NotFoundError
from pmo.platform.tenant_context import get_tenant_id

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Base)

TENANT_COLUMN = "tenant_id"


class RecordNotFoundError(NotFoundError):
    """Record absent from the current tenant (nonexistent or foreign)."""
    pass


class TenantScopedRepository(Generic[T]):
    """
    Tenant-pre-scoped data access for one model.

    Subclasses set `model` (a TenantScopedMixin model) and optionally
    `resource_name` used in not-found messages.

    Filters are passed as a mapping of column name to value (a list/tuple
    value becomes IN, None becomes IS NULL) plus optional SQLAlchemy
    criteria on the model's columns.
    """

    model: type = None
    resource_name: Optional[str] = None

    def __init__(self, db_session: Session):
        if self.model is None or not is_tenant_scoped(self.model):
            raise TypeError(
                f"{type(self).__name__}.model must be a TenantScopedMixin model"
            )
        self.db_session = db_session
        self._columns = {c.key for c in inspect(self.model).column_attrs}

    @property
    def resource(self) -> str:
        return self.resource_name or self.model.__name__

    # ------------------------------------------------------------------
    # Query building
    # ------------------------------------------------------------------

    def _column(self, name: str):
        if name not in self._columns:
            raise ValueError(f"Unknown field '{name}' for {self.model.__name__}")
        return getattr(self.model, name)

    def _build_filters(self, where: Optional[Mapping[str, Any]], criteria: Sequence) -> list:
        filters = list(criteria)
        for key, value in (where or {}).items():
            if key == TENANT_COLUMN:
                logger.warning(
                    "tenant_id found in filter, ignoring it",
                    extra={"entity_type": self.model.__name__, "filter_tenant_id": value},
                )
                continue
            column = self._column(key)
            if isinstance(value, (list, tuple, set, frozenset)):
                filters.append(column.in_(list(value)))
            elif value is None:
                filters.append(column.is_(None))
            else:
                filters.append(column == value)
        return filters

    def _scoped_query(self, tenant_id: str, *entities):
        """
        Start a query constrained to the tenant.

        This ensures NO query can access cross-tenant data.
        """
        query = self.db_session.query(*(entities or (self.model,)))
        return query.filter(getattr(self.model, TENANT_COLUMN) == tenant_id)

    def _order_clause(self, order_by):
        if order_by is None:
            return None
        if isinstance(order_by, str):
            if order_by.startswith("-"):
                return self._column(order_by[1:]).desc()
            return self._column(order_by).asc()
        return order_by

    def _clean_payload(self, data: Mapping[str, Any], operation: str) -> dict:
        payload = dict(data)
        if TENANT_COLUMN in payload:
            logger.warning(
                "tenant_id found in payload, removing it",
                extra={
                    "entity_type": self.model.__name__,
                    "operation": operation,
                    "removed_tenant_id": payload.pop(TENANT_COLUMN),
                },
            )
        unknown = [key for key in payload if key not in self._columns]
        if unknown:
            raise ValueError(f"Unknown fields for {self.model.__name__}: {unknown}")
        return payload

    def _commit(self, operation: str, tenant_id: str, **log_extra) -> None:
        try:
            self.db_session.commit()
        except SQLAlchemyError as e:
            self.db_session.rollback()
            logger.error(
                f"Failed to {operation} {self.model.__name__}",
                extra={"tenant_id": tenant_id, "error": str(e), **log_extra},
            )
            raise

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_by_id(self, entity_id: str) -> Optional[T]:
        """Get entity by ID within the current tenant, or None."""
        tenant_id = get_tenant_id()
        return (
            self._scoped_query(tenant_id)
            .filter(self.model.id == entity_id)
            .first()
        )

    def get_by_id(self, entity_id: str) -> T:
        """Get entity by ID within the current tenant or raise RecordNotFoundError."""
        entity = self.find_by_id(entity_id)
        if entity is None:
            raise RecordNotFoundError(self.resource)
        return entity

    def find_first(
        self,
        where: Optional[Mapping[str, Any]] = None,
        *criteria,
        order_by=None,
    ) -> Optional[T]:
        tenant_id = get_tenant_id()
        query = self._scoped_query(tenant_id).filter(*self._build_filters(where, criteria))
        clause = self._order_clause(order_by)
        if clause is not None:
            query = query.order_by(clause)
        return query.first()

    def find_many(
        self,
        where: Optional[Mapping[str, Any]] = None,
        *criteria,
        order_by=None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[T]:
        """
        List entities for the current tenant.

        Pagination is applied in SQL after the tenant filter.
        """
        tenant_id = get_tenant_id()
        query = self._scoped_query(tenant_id).filter(*self._build_filters(where, criteria))

        clause = self._order_clause(order_by)
        if clause is not None:
            query = query.order_by(clause)
        if offset is not None:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)

        return query.all()

    def count(self, where: Optional[Mapping[str, Any]] = None, *criteria) -> int:
        tenant_id = get_tenant_id()
        return (
            self._scoped_query(tenant_id)
            .filter(*self._build_filters(where, criteria))
            .count()
        )

    def exists(self, entity_id: str) -> bool:
        return self.find_by_id(entity_id) is not None

    def aggregate(
        self,
        field: str,
        where: Optional[Mapping[str, Any]] = None,
        *criteria,
    ) -> dict[str, Any]:
        """Return count/sum/avg/min/max of a column over the tenant's rows."""
        tenant_id = get_tenant_id()
        column = self._column(field)
        row = (
            self._scoped_query(
                tenant_id,
                func.count(column),
                func.sum(column),
                func.avg(column),
                func.min(column),
                func.max(column),
            )
            .filter(*self._build_filters(where, criteria))
            .one()
        )
        return {
            "count": row[0],
            "sum": row[1],
            "avg": row[2],
            "min": row[3],
            "max": row[4],
        }

    def group_by(
        self,
        field: str,
        where: Optional[Mapping[str, Any]] = None,
        *criteria,
    ) -> List[tuple]:
        """Return (value, row_count) pairs for a column over the tenant's rows."""
        tenant_id = get_tenant_id()
        column = self._column(field)
        return [
            (value, total)
            for value, total in (
                self._scoped_query(tenant_id, column, func.count(self.model.id))
                .filter(*self._build_filters(where, criteria))
                .group_by(column)
                .order_by(column)
                .all()
            )
        ]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, entity_data: Mapping[str, Any]) -> T:
        """
        Create new entity owned by the current tenant.

        SECURITY: tenant_id from entity_data is IGNORED.
        """
        tenant_id = get_tenant_id()
        payload = self._clean_payload(entity_data, "create")
        payload[TENANT_COLUMN] = tenant_id

        entity = self.model(**payload)
        self.db_session.add(entity)
        self._commit("create", tenant_id)

        logger.info(
            "Entity created",
            extra={
                "tenant_id": tenant_id,
                "entity_id": entity.id,
                "entity_type": self.model.__name__,
            },
        )
        return entity

    def create_many(self, rows: Iterable[Mapping[str, Any]]) -> List[T]:
        """Create several entities in one transaction, all owned by the current tenant."""
        tenant_id = get_tenant_id()
        entities = []
        for row in rows:
            payload = self._clean_payload(row, "create_many")
            payload[TENANT_COLUMN] = tenant_id
            entities.append(self.model(**payload))

        self.db_session.add_all(entities)
        self._commit("create_many", tenant_id, count=len(entities))

        logger.info(
            "Entities created",
            extra={
                "tenant_id": tenant_id,
                "count": len(entities),
                "entity_type": self.model.__name__,
            },
        )
        return entities

    def update(self, entity_id: str, entity_data: Mapping[str, Any]) -> T:
        """
        Update an entity of the current tenant.

        Raises:
            RecordNotFoundError: If the id does not exist in the current tenant
        """
        tenant_id = get_tenant_id()
        payload = self._clean_payload(entity_data, "update")

        entity = self.find_by_id(entity_id)
        if entity is None:
            raise RecordNotFoundError(self.resource)

        for key, value in payload.items():
            setattr(entity, key, value)
        self._commit("update", tenant_id, entity_id=entity_id)

        logger.info(
            "Entity updated",
            extra={
                "tenant_id": tenant_id,
                "entity_id": entity_id,
                "entity_type": self.model.__name__,
            },
        )
        return entity

    def update_many(
        self,
        entity_data: Mapping[str, Any],
        where: Optional[Mapping[str, Any]] = None,
        *criteria,
    ) -> int:
        """Bulk update matching entities of the current tenant. Returns affected count."""
        tenant_id = get_tenant_id()
        payload = self._clean_payload(entity_data, "update_many")
        if not payload:
            return 0

        affected = (
            self._scoped_query(tenant_id)
            .filter(*self._build_filters(where, criteria))
            .update(payload, synchronize_session="fetch")
        )
        self._commit("update_many", tenant_id)

        logger.info(
            "Entities updated",
            extra={
                "tenant_id": tenant_id,
                "count": affected,
                "entity_type": self.model.__name__,
            },
        )
        return affected

    def delete(self, entity_id: str) -> None:
        """
        Delete an entity of the current tenant.

        Raises:
            RecordNotFoundError: If the id does not exist in the current tenant
        """
        tenant_id = get_tenant_id()
        entity = self.find_by_id(entity_id)
        if entity is None:
            raise RecordNotFoundError(self.resource)

        self.db_session.delete(entity)
        self._commit("delete", tenant_id, entity_id=entity_id)

        logger.info(
            "Entity deleted",
            extra={
                "tenant_id": tenant_id,
                "entity_id": entity_id,
                "entity_type": self.model.__name__,
            },
        )

    def delete_many(self, where: Optional[Mapping[str, Any]] = None, *criteria) -> int:
        """Bulk delete matching entities of the current tenant. Returns affected count."""
        tenant_id = get_tenant_id()
        affected = (
            self._scoped_query(tenant_id)
            .filter(*self._build_filters(where, criteria))
            .delete(synchronize_session="fetch")
        )
        self._commit("delete_many", tenant_id)

        logger.info(
            "Entities deleted",
            extra={
                "tenant_id": tenant_id,
                "count": affected,
                "entity_type": self.model.__name__,
            },
        )
        return affected

    def upsert(
        self,
        entity_id: str,
        create: Mapping[str, Any],
        update: Mapping[str, Any],
    ) -> T:
        """
        Update the entity if it exists in the current tenant, else create it.

        An id already taken by another tenant's record is reported as
        not-found rather than created or overwritten.
        """
        tenant_id = get_tenant_id()
        if self.find_by_id(entity_id) is not None:
            return self.update(entity_id, update)

        payload = self._clean_payload(create, "upsert")
        payload["id"] = entity_id
        payload[TENANT_COLUMN] = tenant_id
        entity = self.model(**payload)
        self.db_session.add(entity)
        try:
            self.db_session.commit()
        except IntegrityError:
            self.db_session.rollback()
            logger.warning(
                "Upsert collided with an id outside the current tenant",
                extra={
                    "tenant_id": tenant_id,
                    "entity_id": entity_id,
                    "entity_type": self.model.__name__,
                },
            )
            raise RecordNotFoundError(self.resource)
        except SQLAlchemyError:
            self.db_session.rollback()
            raise

        logger.info(
            "Entity created",
            extra={
                "tenant_id": tenant_id,
                "entity_id": entity_id,
                "entity_type": self.model.__name__,
            },
        )
        return entity

"""
Base mixins for database models.

Provides common functionality:
- TimestampMixin: created_at, updated_at timestamps
- TenantScopedMixin: tenant_id for multi-tenant isolation
- generate_uuid: UUID generation for primary keys
"""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, String, func
from sqlalchemy.orm import declared_attr


def generate_uuid() -> str:
    """Generate a UUID4 string for use as a primary key default."""
    return str(uuid.uuid4())


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamp columns."""

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        comment="Timestamp when record was created"
    )

    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
        comment="Timestamp when record was last updated"
    )


class TenantScopedMixin:
    """
    Mixin that marks a model as tenant-scoped.

    SECURITY: tenant_id is assigned from the active tenant context at
    creation and is immutable afterwards. Never accept it from client input.
    Every model using this mixin is filtered by the scoped data layer.
    """

    @declared_attr
    def tenant_id(cls):
        return Column(
            String(255),
            ForeignKey("tenants.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
            comment="Owning tenant. Set from tenant context, never from client input."
        )


def is_tenant_scoped(model) -> bool:
    """Check whether a model class (or instance) is tenant-scoped."""
    cls = model if isinstance(model, type) else type(model)
    return issubclass(cls, TenantScopedMixin)

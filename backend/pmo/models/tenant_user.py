"""
TenantUser membership model.

TenantUser is the sole source of truth for "can user U act as tenant T,
and with what role". A user may belong to any number of tenants but holds
at most one role per tenant.

SECURITY:
- CASCADE delete on user_id and tenant_id removes access with the parent
- Unique (tenant_id, user_id) enforces one role per tenant
"""

from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy import Column, String, DateTime, Enum, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship

from pmo.db_base import Base
from pmo.models.base import TimestampMixin, generate_uuid
from pmo.constants.roles import TenantRole

if TYPE_CHECKING:
    from pmo.models.tenant import Tenant
    from pmo.models.user import User


class TenantUser(Base, TimestampMixin):
    """Membership of a user in a tenant with a role."""

    __tablename__ = "tenant_users"

    id = Column(String(255), primary_key=True, default=generate_uuid)

    tenant_id = Column(
        String(255),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id = Column(
        String(255),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    role = Column(
        Enum(TenantRole, name="tenant_role", create_constraint=True),
        nullable=False,
        default=TenantRole.MEMBER,
    )

    invited_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    accepted_at = Column(DateTime(timezone=True), nullable=True)

    tenant = relationship("Tenant", back_populates="memberships")
    user = relationship("User", back_populates="memberships")

    __table_args__ = (
        UniqueConstraint("tenant_id", "user_id", name="uq_tenant_users_tenant_user"),
        Index("ix_tenant_users_user_tenant", "user_id", "tenant_id"),
    )

    @property
    def is_accepted(self) -> bool:
        return self.accepted_at is not None

    def __repr__(self) -> str:
        return (
            f"<TenantUser(tenant_id={self.tenant_id}, user_id={self.user_id}, "
            f"role={self.role})>"
        )

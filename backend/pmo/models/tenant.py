"""
Tenant model for the multi-tenant PMO platform.

Tenant is the isolation boundary: Tenant.id is the tenant_id carried by
every tenant-scoped record and by the request-scoped TenantContext.

Tenants are created by the provisioning flow (TenantService) and read by
tenant resolution on every request. They are never deleted mid-request.
"""

import enum
from typing import TYPE_CHECKING

from sqlalchemy import Column, String, DateTime, Enum
from sqlalchemy.orm import relationship

from pmo.db_base import Base
from pmo.models.base import TimestampMixin, generate_uuid

if TYPE_CHECKING:
    from pmo.models.tenant_user import TenantUser


class TenantPlan(str, enum.Enum):
    """Subscription plan."""
    TRIAL = "TRIAL"
    STARTER = "STARTER"
    PROFESSIONAL = "PROFESSIONAL"
    ENTERPRISE = "ENTERPRISE"


class TenantStatus(str, enum.Enum):
    """Tenant lifecycle status."""
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"  # Temporarily disabled (e.g., billing issue)
    CANCELLED = "CANCELLED"  # Permanently closed


class Tenant(Base, TimestampMixin):
    """
    An isolated customer organization.

    Only ACTIVE tenants can be resolved for a request.
    """

    __tablename__ = "tenants"

    id = Column(
        String(255),
        primary_key=True,
        default=generate_uuid,
        comment="Primary key - this IS the tenant_id used across all models"
    )

    name = Column(String(255), nullable=False)

    slug = Column(
        String(50),
        nullable=False,
        unique=True,
        index=True,
        comment="URL-friendly unique key (e.g., 'acme-consulting')"
    )

    plan = Column(
        Enum(TenantPlan, name="tenant_plan", create_constraint=True),
        nullable=False,
        default=TenantPlan.TRIAL,
    )

    status = Column(
        Enum(TenantStatus, name="tenant_status", create_constraint=True),
        nullable=False,
        default=TenantStatus.ACTIVE,
        index=True,
    )

    billing_email = Column(String(255), nullable=True)

    trial_ends_at = Column(DateTime(timezone=True), nullable=True)

    memberships = relationship(
        "TenantUser",
        back_populates="tenant",
        cascade="all, delete-orphan",
        lazy="dynamic",
    )

    @property
    def is_active(self) -> bool:
        return self.status == TenantStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id}, slug={self.slug}, status={self.status})>"

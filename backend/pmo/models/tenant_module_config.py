"""
Per-tenant module configuration.

A row overrides the process-level module default for one tenant. Rows for
core modules may exist but cannot switch them off.
"""

import enum
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, String, Boolean, DateTime, Enum, ForeignKey, UniqueConstraint

from pmo.db_base import Base
from pmo.models.base import TimestampMixin, generate_uuid


class ModuleTier(str, enum.Enum):
    TRIAL = "TRIAL"
    BASIC = "BASIC"
    PREMIUM = "PREMIUM"
    ENTERPRISE = "ENTERPRISE"


class TenantModuleConfig(Base, TimestampMixin):
    """Module switch for one tenant."""

    __tablename__ = "tenant_module_configs"

    id = Column(String(255), primary_key=True, default=generate_uuid)

    tenant_id = Column(
        String(255),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    module_id = Column(String(100), nullable=False)

    enabled = Column(Boolean, nullable=False, default=True)

    tier = Column(
        Enum(ModuleTier, name="module_tier", create_constraint=True),
        nullable=False,
        default=ModuleTier.BASIC,
    )

    trial_ends_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "module_id", name="uq_tenant_module"),
    )

    def is_effective(self, now: Optional[datetime] = None) -> bool:
        """Enabled and, for trials, not yet expired."""
        if not self.enabled:
            return False
        if self.tier == ModuleTier.TRIAL and self.trial_ends_at is not None:
            now = now or datetime.now(timezone.utc)
            ends_at = self.trial_ends_at
            # SQLite drops tzinfo on read
            if ends_at.tzinfo is None:
                ends_at = ends_at.replace(tzinfo=timezone.utc)
            if now > ends_at:
                return False
        return True

    def __repr__(self) -> str:
        return (
            f"<TenantModuleConfig(tenant_id={self.tenant_id}, module_id={self.module_id}, "
            f"enabled={self.enabled}, tier={self.tier})>"
        )

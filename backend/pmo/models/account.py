"""CRM account."""

import enum

from sqlalchemy import Column, String, Integer, Enum

from pmo.db_base import Base
from pmo.models.base import TimestampMixin, TenantScopedMixin, generate_uuid


class AccountType(str, enum.Enum):
    PROSPECT = "PROSPECT"
    CUSTOMER = "CUSTOMER"
    PARTNER = "PARTNER"
    CHURNED = "CHURNED"


class Account(Base, TimestampMixin, TenantScopedMixin):
    __tablename__ = "accounts"

    id = Column(String(255), primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    website = Column(String(255), nullable=True)
    type = Column(
        Enum(AccountType, name="account_type", create_constraint=True),
        nullable=False,
        default=AccountType.PROSPECT,
    )
    health_score = Column(Integer, nullable=True)
    owner_id = Column(String(255), nullable=True, comment="User id of the account owner")

    def __repr__(self) -> str:
        return f"<Account(id={self.id}, tenant_id={self.tenant_id}, type={self.type})>"

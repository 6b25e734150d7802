"""Client: a customer organization managed inside a tenant."""

from sqlalchemy import Column, String, Text, Boolean

from pmo.db_base import Base
from pmo.models.base import TimestampMixin, TenantScopedMixin, generate_uuid


class Client(Base, TimestampMixin, TenantScopedMixin):
    __tablename__ = "clients"

    id = Column(String(255), primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    industry = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    archived = Column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<Client(id={self.id}, tenant_id={self.tenant_id})>"

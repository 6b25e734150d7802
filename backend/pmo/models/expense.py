"""Expense line for the optional finance tracking module."""

from sqlalchemy import Column, String, Numeric, Date, ForeignKey

from pmo.db_base import Base
from pmo.models.base import TimestampMixin, TenantScopedMixin, generate_uuid


class Expense(Base, TimestampMixin, TenantScopedMixin):
    __tablename__ = "expenses"

    id = Column(String(255), primary_key=True, default=generate_uuid)
    description = Column(String(255), nullable=False)
    category = Column(String(100), nullable=False, index=True)
    amount = Column(Numeric(12, 2, asdecimal=False), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    incurred_on = Column(Date, nullable=True)
    project_id = Column(
        String(255),
        ForeignKey("projects.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

"""Project: a unit of delivery work, optionally tied to a client."""

import enum

from sqlalchemy import Column, String, Text, Date, Enum, ForeignKey

from pmo.db_base import Base
from pmo.models.base import TimestampMixin, TenantScopedMixin, generate_uuid


class ProjectStatus(str, enum.Enum):
    PLANNING = "PLANNING"
    IN_PROGRESS = "IN_PROGRESS"
    ON_HOLD = "ON_HOLD"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class Project(Base, TimestampMixin, TenantScopedMixin):
    __tablename__ = "projects"

    id = Column(String(255), primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(
        Enum(ProjectStatus, name="project_status", create_constraint=True),
        nullable=False,
        default=ProjectStatus.PLANNING,
        index=True,
    )
    client_id = Column(
        String(255),
        ForeignKey("clients.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)

    def __repr__(self) -> str:
        return f"<Project(id={self.id}, tenant_id={self.tenant_id}, status={self.status})>"

"""
User model.

A user is a global identity. Access to tenant data comes only from
TenantUser memberships; User.role is a separate platform-level role used
for platform administration.
"""

from sqlalchemy import Column, String, Boolean, Enum
from sqlalchemy.orm import relationship

from pmo.db_base import Base
from pmo.models.base import TimestampMixin, generate_uuid
from pmo.constants.roles import PlatformRole


class User(Base, TimestampMixin):
    """Platform user, identified by the `sub` claim of the session token."""

    __tablename__ = "users"

    id = Column(String(255), primary_key=True, default=generate_uuid)

    email = Column(String(255), nullable=False, unique=True, index=True)

    name = Column(String(255), nullable=True)

    role = Column(
        Enum(PlatformRole, name="platform_role", create_constraint=True),
        nullable=False,
        default=PlatformRole.USER,
    )

    is_active = Column(
        Boolean,
        nullable=False,
        default=True,
        comment="Deactivated users fail authentication like deleted ones"
    )

    memberships = relationship(
        "TenantUser",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="dynamic",
    )

    @property
    def is_platform_admin(self) -> bool:
        return self.role == PlatformRole.ADMIN

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"

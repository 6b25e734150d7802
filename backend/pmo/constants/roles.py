"""
Role constants for tenant membership and platform administration.

Two independent axes:
- TenantRole: the privilege a user holds inside one tenant (TenantUser.role)
- PlatformRole: a global role on the User record; ADMIN is a platform operator

TenantRole.ADMIN is the universal override for route-level role checks.
"""

from enum import Enum
from typing import FrozenSet


class TenantRole(str, Enum):
    """Membership role within a single tenant."""
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"
    VIEWER = "VIEWER"


class PlatformRole(str, Enum):
    """Global user role, independent of tenant membership."""
    USER = "USER"
    ADMIN = "ADMIN"


# Bypasses finer-grained role requirements on tenant routes
OVERRIDE_ROLE = TenantRole.ADMIN

# Roles allowed to manage members and tenant settings
MANAGER_ROLES: FrozenSet[TenantRole] = frozenset({TenantRole.OWNER, TenantRole.ADMIN})

# Roles allowed to write tenant data
WRITER_ROLES: FrozenSet[TenantRole] = frozenset(
    {TenantRole.OWNER, TenantRole.ADMIN, TenantRole.MEMBER}
)

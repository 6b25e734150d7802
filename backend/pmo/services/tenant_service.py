"""
Tenant Service for provisioning tenants and managing memberships.

This service handles:
- Creating tenants with a unique slug and an OWNER membership
- Looking up tenants by id or slug
- Listing the tenants a user can act within
- Adding, re-roling and removing members

Tenant and TenantUser are not tenant-scoped models: every method takes
the tenant id explicitly and filters by it. Runs on a raw session; only
call it with ids that came from a resolved tenant context or a trusted
caller.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pmo.constants.roles import TenantRole
from pmo.models.tenant import Tenant, TenantPlan, TenantStatus
from pmo.models.tenant_user import TenantUser
from pmo.models.user import User

logger = logging.getLogger(__name__)

MAX_SLUG_LENGTH = 50
TRIAL_DAYS = 14

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


class TenantServiceError(Exception):
    """Base exception for tenant service errors."""
    pass


class TenantNotFoundError(TenantServiceError):
    """Raised when tenant is not found."""
    pass


class UserNotFoundError(TenantServiceError):
    """Raised when user is not found."""
    pass


class DuplicateMembershipError(TenantServiceError):
    """Raised when the user already belongs to the tenant."""
    pass


class MembershipNotFoundError(TenantServiceError):
    """Raised when the user is not a member of the tenant."""
    pass


class LastOwnerError(TenantServiceError):
    """Raised when an operation would leave a tenant without an OWNER."""
    pass


def generate_slug(name: str) -> str:
    """
    Build a URL-safe slug from a display name.

    Lower-cases, turns runs of non-alphanumerics into '-', trims edge
    dashes and truncates to 50 characters.
    """
    slug = _NON_ALNUM.sub("-", (name or "").lower()).strip("-")
    return slug[:MAX_SLUG_LENGTH].strip("-")


class TenantService:
    """Tenant provisioning and membership management."""

    def __init__(self, db_session: Session):
        self.db = db_session

    # ------------------------------------------------------------------
    # Tenants
    # ------------------------------------------------------------------

    def _unique_slug(self, base: str) -> str:
        base = base or "tenant"
        candidate = base
        suffix = 1
        while self.db.query(Tenant.id).filter(Tenant.slug == candidate).first():
            suffix += 1
            tail = f"-{suffix}"
            candidate = f"{base[:MAX_SLUG_LENGTH - len(tail)]}{tail}"
        return candidate

    def create_tenant(
        self,
        name: str,
        owner_user_id: str,
        plan: TenantPlan = TenantPlan.TRIAL,
        slug: Optional[str] = None,
        billing_email: Optional[str] = None,
    ) -> Tenant:
        """
        Create a tenant and make the given user its OWNER.

        Raises:
            UserNotFoundError: If the owner does not exist
        """
        owner = self.db.query(User).filter(User.id == owner_user_id).first()
        if owner is None:
            raise UserNotFoundError(f"User {owner_user_id} not found")

        now = datetime.now(timezone.utc)
        tenant = Tenant(
            name=name,
            slug=self._unique_slug(generate_slug(slug or name)),
            plan=plan,
            status=TenantStatus.ACTIVE,
            billing_email=billing_email or owner.email,
            trial_ends_at=now + timedelta(days=TRIAL_DAYS) if plan == TenantPlan.TRIAL else None,
        )
        self.db.add(tenant)
        self.db.flush()

        self.db.add(
            TenantUser(
                tenant_id=tenant.id,
                user_id=owner.id,
                role=TenantRole.OWNER,
                invited_at=now,
                accepted_at=now,
            )
        )
        self.db.commit()

        logger.info(
            "Tenant created",
            extra={"tenant_id": tenant.id, "slug": tenant.slug, "owner_user_id": owner.id},
        )
        return tenant

    def get_tenant_by_id(self, tenant_id: str) -> Optional[Tenant]:
        return self.db.query(Tenant).filter(Tenant.id == tenant_id).first()

    def get_tenant_by_slug(self, slug: str) -> Optional[Tenant]:
        return self.db.query(Tenant).filter(Tenant.slug == slug).first()

    def set_status(self, tenant_id: str, status: TenantStatus) -> Tenant:
        tenant = self.get_tenant_by_id(tenant_id)
        if tenant is None:
            raise TenantNotFoundError(f"Tenant {tenant_id} not found")
        tenant.status = status
        self.db.commit()
        logger.info("Tenant status changed", extra={"tenant_id": tenant_id, "status": status.value})
        return tenant

    # ------------------------------------------------------------------
    # Memberships
    # ------------------------------------------------------------------

    def get_membership(self, tenant_id: str, user_id: str) -> Optional[TenantUser]:
        return (
            self.db.query(TenantUser)
            .filter(TenantUser.tenant_id == tenant_id, TenantUser.user_id == user_id)
            .first()
        )

    def get_user_tenant_role(self, tenant_id: str, user_id: str) -> Optional[TenantRole]:
        membership = self.get_membership(tenant_id, user_id)
        return membership.role if membership else None

    def get_user_tenants(self, user_id: str) -> List[Tuple[Tenant, TenantUser]]:
        """Active tenants the user has accepted membership in, by name."""
        rows = (
            self.db.query(Tenant, TenantUser)
            .join(TenantUser, TenantUser.tenant_id == Tenant.id)
            .filter(
                TenantUser.user_id == user_id,
                TenantUser.accepted_at.isnot(None),
                Tenant.status == TenantStatus.ACTIVE,
            )
            .order_by(Tenant.name)
            .all()
        )
        return [(tenant, membership) for tenant, membership in rows]

    def list_members(self, tenant_id: str) -> List[Tuple[TenantUser, User]]:
        return (
            self.db.query(TenantUser, User)
            .join(User, User.id == TenantUser.user_id)
            .filter(TenantUser.tenant_id == tenant_id)
            .order_by(User.email)
            .all()
        )

    def add_user_to_tenant(
        self,
        tenant_id: str,
        email: str,
        role: TenantRole = TenantRole.MEMBER,
    ) -> TenantUser:
        """
        Add an existing user to a tenant.

        Raises:
            UserNotFoundError: If no user has that email
            DuplicateMembershipError: If the user is already a member
        """
        user = self.db.query(User).filter(User.email == email.strip().lower()).first()
        if user is None:
            raise UserNotFoundError("User not found")

        now = datetime.now(timezone.utc)
        membership = TenantUser(
            tenant_id=tenant_id,
            user_id=user.id,
            role=role,
            invited_at=now,
            accepted_at=now,
        )
        self.db.add(membership)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise DuplicateMembershipError("User is already a member of this tenant")

        logger.info(
            "Tenant member added",
            extra={"tenant_id": tenant_id, "user_id": user.id, "role": role.value},
        )
        return membership

    def _owner_count(self, tenant_id: str) -> int:
        return (
            self.db.query(TenantUser)
            .filter(TenantUser.tenant_id == tenant_id, TenantUser.role == TenantRole.OWNER)
            .count()
        )

    def update_user_role(self, tenant_id: str, user_id: str, role: TenantRole) -> TenantUser:
        """
        Change a member's role.

        Raises:
            MembershipNotFoundError: If the user is not a member
            LastOwnerError: If this would demote the last OWNER
        """
        membership = self.get_membership(tenant_id, user_id)
        if membership is None:
            raise MembershipNotFoundError("Member not found")

        if (
            membership.role == TenantRole.OWNER
            and role != TenantRole.OWNER
            and self._owner_count(tenant_id) <= 1
        ):
            raise LastOwnerError("Cannot demote the last owner")

        previous = membership.role
        membership.role = role
        self.db.commit()

        logger.info(
            "Tenant member role updated",
            extra={
                "tenant_id": tenant_id,
                "user_id": user_id,
                "previous_role": previous.value,
                "role": role.value,
            },
        )
        return membership

    def remove_user_from_tenant(self, tenant_id: str, user_id: str) -> None:
        """
        Remove a member.

        Raises:
            MembershipNotFoundError: If the user is not a member
            LastOwnerError: If the user is the last OWNER
        """
        membership = self.get_membership(tenant_id, user_id)
        if membership is None:
            raise MembershipNotFoundError("Member not found")

        if membership.role == TenantRole.OWNER and self._owner_count(tenant_id) <= 1:
            raise LastOwnerError("Cannot remove the last owner")

        self.db.delete(membership)
        self.db.commit()

        logger.info(
            "Tenant member removed",
            extra={"tenant_id": tenant_id, "user_id": user_id},
        )

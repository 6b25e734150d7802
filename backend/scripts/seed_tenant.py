"""
Provision a tenant with an owner and print a session token.

Runs on the raw (unscoped) session: this is trusted maintenance code and
the only way to create the first tenant of a fresh database.

Usage:
    python backend/scripts/seed_tenant.py --name "Acme Consulting" --owner-email owner@acme.test
    python backend/scripts/seed_tenant.py --name "Acme" --owner-email a@acme.test --platform-admin

Environment variables:
    DATABASE_URL: PostgreSQL connection string
    JWT_SECRET: signing secret for the printed session token
"""

import sys
import logging
from pathlib import Path

# Add backend directory to path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from pmo.auth.jwt import create_session_token
from pmo.constants.roles import PlatformRole
from pmo.database.session import get_raw_session
from pmo.models.tenant import TenantPlan
from pmo.models.user import User
from pmo.services.tenant_service import TenantService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def seed_tenant(
    name: str,
    owner_email: str,
    plan: TenantPlan = TenantPlan.TRIAL,
    slug: str = None,
    platform_admin: bool = False,
) -> dict:
    """Create (or reuse) the owner user and create a tenant owned by them."""
    email = owner_email.strip().lower()
    with get_raw_session() as session:
        user = session.query(User).filter(User.email == email).first()
        if user is None:
            user = User(email=email, name=email.split("@")[0])
            session.add(user)
            logger.info(f"Created user: {email}")
        if platform_admin:
            user.role = PlatformRole.ADMIN
        session.commit()

        tenant = TenantService(session).create_tenant(name, user.id, plan=plan, slug=slug)
        return {"tenant_id": tenant.id, "slug": tenant.slug, "user_id": user.id}


def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Provision a tenant and its owner")
    parser.add_argument("--name", required=True, help="Tenant display name")
    parser.add_argument("--owner-email", required=True, help="Owner email (created if missing)")
    parser.add_argument("--slug", help="Preferred slug (default: derived from name)")
    parser.add_argument(
        "--plan",
        choices=[p.value for p in TenantPlan],
        default=TenantPlan.TRIAL.value,
        help="Subscription plan"
    )
    parser.add_argument(
        "--platform-admin",
        action="store_true",
        help="Grant the owner the platform ADMIN role"
    )
    args = parser.parse_args()

    result = seed_tenant(
        args.name,
        args.owner_email,
        plan=TenantPlan(args.plan),
        slug=args.slug,
        platform_admin=args.platform_admin,
    )
    token = create_session_token(result["user_id"])

    logger.info(f"Tenant created: {result['slug']} ({result['tenant_id']})")
    print(f"X-Tenant-ID: {result['tenant_id']}")
    print(f"Authorization: Bearer {token}")


if __name__ == "__main__":
    main()

"""
Platform administration across tenants.

The only sanctioned cross-tenant read path. Every call:
- requires a platform ADMIN actor (checked again here, not only by the route)
- runs on a raw session
- writes an audit event and a warning log before returning
"""

import logging
from typing import List, Optional

from fastapi import Request

from pmo.database.session import get_raw_session
from pmo.models.tenant_user import TenantUser
from pmo.models.user import User
from pmo.platform.audit import AuditAction, AuditEvent, build_request_event, write_audit_log_sync
from pmo.platform.errors import PermissionDeniedError

logger = logging.getLogger(__name__)


class AdminService:
    """Audited platform-admin operations."""

    def __init__(self, actor: User, request: Optional[Request] = None):
        if actor is None or not actor.is_platform_admin:
            raise PermissionDeniedError()
        self.actor = actor
        self.request = request

    def list_all_users(self, limit: int = 100, offset: int = 0) -> List[dict]:
        """List users of every tenant, with their memberships."""
        with get_raw_session() as session:
            users = (
                session.query(User)
                .order_by(User.email)
                .offset(offset)
                .limit(limit)
                .all()
            )
            user_ids = [u.id for u in users]
            memberships = {}
            if user_ids:
                for row in session.query(TenantUser).filter(TenantUser.user_id.in_(user_ids)):
                    memberships.setdefault(row.user_id, []).append(
                        {"tenant_id": row.tenant_id, "role": row.role.value}
                    )

            result = [
                {
                    "id": u.id,
                    "email": u.email,
                    "name": u.name,
                    "role": u.role.value,
                    "is_active": u.is_active,
                    "tenants": memberships.get(u.id, []),
                }
                for u in users
            ]

            logger.warning(
                "Platform admin cross-tenant access",
                extra={
                    "user_id": self.actor.id,
                    "operation": AuditAction.PLATFORM_ADMIN_USER_LIST.value,
                    "result_count": len(result),
                },
            )

            kwargs = dict(
                user_id=self.actor.id,
                resource_type="user",
                metadata={"result_count": len(result), "limit": limit, "offset": offset},
            )
            if self.request is not None:
                event = build_request_event(self.request, AuditAction.PLATFORM_ADMIN_USER_LIST, **kwargs)
            else:
                event = AuditEvent(action=AuditAction.PLATFORM_ADMIN_USER_LIST, **kwargs)
            write_audit_log_sync(session, event)

        return result

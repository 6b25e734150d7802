"""
Audit logging for tenant-sensitive actions.

CRITICAL SECURITY REQUIREMENTS:
- Audit logs are append-only (no UPDATE/DELETE from application code)
- Tenant switches, membership changes, module changes and every use of
  the platform-admin cross-tenant exemption MUST write an audit event
- A failed database write MUST fall back to the application logger and
  never break the request

AuditLog is not tenant-scoped: platform events have no tenant,
and audit rows are written through the raw session.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from fastapi import Request
from sqlalchemy import Column, String, DateTime, Text, Index, JSON
from sqlalchemy.orm import Session

from pmo.db_base import Base

logger = logging.getLogger(__name__)


class AuditAction(str, Enum):
    TENANT_CREATED = "tenant.created"
    TENANT_SWITCH = "tenant.switch"
    TENANT_MEMBER_ADDED = "tenant.member_added"
    TENANT_MEMBER_REMOVED = "tenant.member_removed"
    TENANT_MEMBER_ROLE_CHANGED = "tenant.member_role_changed"
    MODULE_CONFIG_CHANGED = "module.config_changed"
    MODULE_TRIAL_STARTED = "module.trial_started"
    PLATFORM_ADMIN_USER_LIST = "platform_admin.user_list"


class AuditOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    DENIED = "denied"


class AuditLog(Base):
    """Append-only audit record."""

    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(255), nullable=True, index=True)  # NULL for platform events
    user_id = Column(String(255), nullable=True, index=True)
    action = Column(String(100), nullable=False, index=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)
    resource_type = Column(String(100), nullable=True)
    resource_id = Column(String(255), nullable=True)
    event_metadata = Column(JSON, nullable=False, default=dict)
    correlation_id = Column(String(36), nullable=False, index=True)
    outcome = Column(String(20), nullable=False, default="success")

    __table_args__ = (
        Index("ix_audit_logs_tenant_timestamp", "tenant_id", "timestamp"),
        Index("ix_audit_logs_action_timestamp", "action", "timestamp"),
    )


@dataclass
class AuditEvent:
    """Audit event data, built before it is persisted."""
    action: AuditAction
    tenant_id: Optional[str] = None
    user_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    correlation_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    outcome: AuditOutcome = AuditOutcome.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "user_id": self.user_id,
            "action": self.action.value,
            "timestamp": self.timestamp,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "event_metadata": self.metadata,
            "correlation_id": self.correlation_id,
            "outcome": self.outcome.value,
        }


def extract_client_info(request: Request) -> tuple[Optional[str], Optional[str]]:
    """
    Extract client IP and user agent from request.

    Handles X-Forwarded-For for proxied requests.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        ip_address = forwarded_for.split(",")[0].strip()
    else:
        ip_address = request.client.host if request.client else None

    return ip_address, request.headers.get("User-Agent")


def build_request_event(request: Request, action: AuditAction, **kwargs) -> AuditEvent:
    """Build an AuditEvent carrying the request's client info."""
    ip_address, user_agent = extract_client_info(request)
    return AuditEvent(action=action, ip_address=ip_address, user_agent=user_agent, **kwargs)


def write_audit_log_sync(db: Session, event: AuditEvent) -> Optional[AuditLog]:
    """
    Persist an audit event.

    On failure, writes to the fallback logger and returns None.

    Args:
        db: SQLAlchemy Session (raw; audit rows are not tenant-scoped)
        event: The audit event to write

    Returns:
        The created AuditLog record, or None if fallback was used
    """
    audit_id = str(uuid.uuid4())
    try:
        audit_log = AuditLog(id=audit_id, **event.to_dict())
        db.add(audit_log)
        db.commit()

        logger.info(
            "Audit event recorded",
            extra={
                "audit_id": audit_id,
                "tenant_id": event.tenant_id,
                "user_id": event.user_id,
                "action": event.action.value,
                "correlation_id": event.correlation_id,
                "outcome": event.outcome.value,
            }
        )
        return audit_log

    except Exception as e:
        db.rollback()
        _write_fallback_log(event, audit_id, str(e))
        return None


def _write_fallback_log(event: AuditEvent, audit_id: str, error_reason: str) -> None:
    """Write audit event to the application log when the DB write fails."""
    logger.error(
        "AUDIT_FALLBACK",
        extra={
            "event_id": audit_id,
            "tenant_id": event.tenant_id,
            "user_id": event.user_id,
            "action": event.action.value,
            "resource_type": event.resource_type,
            "resource_id": event.resource_id,
            "correlation_id": event.correlation_id,
            "fallback_reason": error_reason,
        }
    )

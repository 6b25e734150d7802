"""
Per-tenant module enablement.

Effective module set for a tenant:
1. start from the process ModuleConfig (what is mounted)
2. a TenantModuleConfig row decides its module: enabled and, for TRIAL
   tier, trial_ends_at not yet passed
3. core modules are always on
4. the result never exceeds the process set

Dependencies are closed once, when the process config is parsed. A row
that switches off a dependency of another enabled module still wins.

Rows are keyed by tenant_id explicitly; this service runs on a raw
session and always filters by the tenant it is given.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import FrozenSet, List, Optional

from sqlalchemy.orm import Session

from pmo.models.tenant_module_config import ModuleTier, TenantModuleConfig
from pmo.platform.modules import ModuleConfig

logger = logging.getLogger(__name__)

DEFAULT_TRIAL_DAYS = 14


class ModuleServiceError(Exception):
    """Base exception for module service errors."""
    pass


class UnknownModuleError(ModuleServiceError):
    """Raised for a module id that is not in the catalog."""
    pass


class CoreModuleError(ModuleServiceError):
    """Raised when trying to disable a core module."""
    pass


class ModuleService:
    """Reads and writes per-tenant module switches."""

    def __init__(self, db_session: Session, config: ModuleConfig):
        self.db = db_session
        self.config = config
        self.catalog = config.catalog

    def _canonical(self, module_id: str) -> str:
        canonical = self.catalog.normalize(module_id)
        if canonical is None:
            raise UnknownModuleError(f"Invalid module ID: {module_id}")
        return canonical

    def get_tenant_modules(self, tenant_id: str) -> List[TenantModuleConfig]:
        return (
            self.db.query(TenantModuleConfig)
            .filter(TenantModuleConfig.tenant_id == tenant_id)
            .order_by(TenantModuleConfig.module_id)
            .all()
        )

    def get_enabled_modules(
        self,
        tenant_id: str,
        now: Optional[datetime] = None,
    ) -> FrozenSet[str]:
        process_enabled = self.config.enabled_modules
        enabled = set(process_enabled)

        for row in self.get_tenant_modules(tenant_id):
            module_id = self.catalog.normalize(row.module_id)
            if module_id is None or self.catalog.is_core(module_id):
                continue
            if row.is_effective(now):
                enabled.add(module_id)
            else:
                enabled.discard(module_id)

        enabled |= self.catalog.core_ids
        return frozenset(enabled & process_enabled)

    def is_module_enabled(self, tenant_id: str, module_id: str) -> bool:
        canonical = self.catalog.normalize(module_id)
        if canonical is None:
            return False
        return canonical in self.get_enabled_modules(tenant_id)

    def _upsert(self, tenant_id: str, module_id: str, **values) -> TenantModuleConfig:
        row = (
            self.db.query(TenantModuleConfig)
            .filter(
                TenantModuleConfig.tenant_id == tenant_id,
                TenantModuleConfig.module_id == module_id,
            )
            .first()
        )
        if row is None:
            row = TenantModuleConfig(tenant_id=tenant_id, module_id=module_id)
            self.db.add(row)
        for key, value in values.items():
            setattr(row, key, value)
        self.db.commit()
        return row

    def set_tenant_module(
        self,
        tenant_id: str,
        module_id: str,
        enabled: bool,
        tier: Optional[ModuleTier] = None,
    ) -> TenantModuleConfig:
        """
        Switch a module on or off for a tenant.

        Raises:
            UnknownModuleError: If the module is not in the catalog
            CoreModuleError: If disabling a core module
        """
        module_id = self._canonical(module_id)
        if self.catalog.is_core(module_id) and not enabled:
            raise CoreModuleError(f"Cannot disable core module: {module_id}")

        values = {"enabled": enabled}
        if tier is not None:
            values["tier"] = tier
            if tier != ModuleTier.TRIAL:
                values["trial_ends_at"] = None

        row = self._upsert(tenant_id, module_id, **values)
        logger.info(
            "Tenant module updated",
            extra={"tenant_id": tenant_id, "module_id": module_id, "enabled": enabled},
        )
        return row

    def start_module_trial(
        self,
        tenant_id: str,
        module_id: str,
        days: int = DEFAULT_TRIAL_DAYS,
    ) -> TenantModuleConfig:
        """Enable a module on the TRIAL tier for `days` days."""
        module_id = self._canonical(module_id)
        trial_ends_at = datetime.now(timezone.utc) + timedelta(days=days)
        row = self._upsert(
            tenant_id,
            module_id,
            enabled=True,
            tier=ModuleTier.TRIAL,
            trial_ends_at=trial_ends_at,
        )
        logger.info(
            "Module trial started",
            extra={
                "tenant_id": tenant_id,
                "module_id": module_id,
                "trial_ends_at": trial_ends_at.isoformat(),
            },
        )
        return row

"""
Tests for module catalog parsing, mount-time gating and per-tenant switches.
"""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi import APIRouter, FastAPI
from fastapi.testclient import TestClient

from pmo.database.session import get_raw_session
from pmo.models.tenant_module_config import ModuleTier, TenantModuleConfig
from pmo.platform.modules import (
    ModuleCatalog,
    ModuleConfig,
    get_module_catalog,
    include_module_router,
    parse_enabled_modules,
)
from pmo.services.module_service import (
    CoreModuleError,
    ModuleService,
    UnknownModuleError,
)


@pytest.fixture
def small_catalog():
    return ModuleCatalog.from_dict({
        "modules": {
            "home": {"core": True},
            "reports": {"default": True, "dependencies": ["charts"]},
            "charts": {"dependencies": ["data"]},
            "data": {},
            "billing": {},
        },
        "deprecated": {"oldReports": "reports"},
    })


class TestCatalog:
    def test_bundled_catalog_loads(self):
        catalog = get_module_catalog()
        assert {"clients", "projects", "crmAccounts"} <= catalog.core_ids
        assert "financeTracking" in catalog.definitions
        assert not catalog.definitions["financeTracking"].default

    def test_unknown_dependency_rejected(self):
        with pytest.raises(ValueError, match="unknown module"):
            ModuleCatalog.from_dict({"modules": {"a": {"dependencies": ["ghost"]}}})

    def test_normalize_is_case_insensitive(self, small_catalog):
        assert small_catalog.normalize("REPORTS") == "reports"
        assert small_catalog.normalize("  charts ") == "charts"

    def test_normalize_maps_deprecated_ids(self, small_catalog):
        assert small_catalog.normalize("oldreports") == "reports"

    def test_normalize_unknown_returns_none(self, small_catalog):
        assert small_catalog.normalize("nope") is None
        assert small_catalog.normalize("") is None

    def test_dependencies_are_transitive(self, small_catalog):
        assert small_catalog.with_dependencies({"reports"}) == {"reports", "charts", "data"}


class TestParseEnabledModules:
    def test_unset_uses_defaults(self, small_catalog):
        assert parse_enabled_modules(None, small_catalog) == {"home", "reports", "charts", "data"}
        assert parse_enabled_modules("   ", small_catalog) == {"home", "reports", "charts", "data"}

    def test_core_always_included(self, small_catalog):
        assert parse_enabled_modules("billing", small_catalog) == {"home", "billing"}

    def test_unknown_ids_ignored(self, small_catalog):
        assert parse_enabled_modules("billing,, nope ,", small_catalog) == {"home", "billing"}

    def test_deprecated_and_mixed_case(self, small_catalog):
        assert parse_enabled_modules("OLDREPORTS", small_catalog) == {"home", "reports", "charts", "data"}

    def test_bundled_defaults(self):
        enabled = parse_enabled_modules(None)
        assert "marketing" in enabled
        assert "financeTracking" not in enabled
        assert "bugTracking" not in enabled

    def test_bundled_deprecated_pulls_dependencies(self):
        enabled = parse_enabled_modules("socialPublishing")
        assert {"marketing", "clients", "projects"} <= enabled
        assert "leads" not in enabled


class TestModuleConfig:
    def test_is_enabled_normalizes(self):
        config = ModuleConfig.from_string("financeTracking")
        assert config.is_enabled("FinanceTracking")
        assert config.is_enabled("aiProjects")
        assert not config.is_enabled("marketing")
        assert not config.is_enabled("unknownModule")

    def test_config_is_immutable(self):
        config = ModuleConfig.from_string(None)
        with pytest.raises(AttributeError):
            config.enabled_modules = frozenset()

    def test_include_module_router_mounts_only_enabled(self):
        app = FastAPI()
        on, off = APIRouter(), APIRouter()

        @on.get("/on")
        def on_route():
            return {"ok": True}

        @off.get("/off")
        def off_route():
            return {"ok": True}

        config = ModuleConfig.from_string("marketing")
        assert include_module_router(app, on, "marketing", config) is True
        assert include_module_router(app, off, "financeTracking", config) is False

        client = TestClient(app)
        assert client.get("/on").status_code == 200
        assert client.get("/off").status_code == 404


def _put_row(tenant_id, module_id, **values):
    with get_raw_session() as session:
        session.add(TenantModuleConfig(tenant_id=tenant_id, module_id=module_id, **values))
        session.commit()


def _service_call(config, fn):
    with get_raw_session() as session:
        return fn(ModuleService(session, config))


class TestModuleService:
    def test_defaults_to_process_set(self, alpha, module_config):
        enabled = _service_call(module_config, lambda s: s.get_enabled_modules(alpha.id))
        assert enabled == module_config.enabled_modules

    def test_row_disables_module_for_one_tenant(self, alpha, beta, module_config):
        _put_row(alpha.id, "financeTracking", enabled=False)

        assert not _service_call(module_config, lambda s: s.is_module_enabled(alpha.id, "financeTracking"))
        assert _service_call(module_config, lambda s: s.is_module_enabled(beta.id, "financeTracking"))

    def test_row_disables_dependency_of_enabled_module(self, alpha, beta):
        config = ModuleConfig.from_string("pipeline")
        assert config.is_enabled("leads")

        _service_call(config, lambda s: s.set_tenant_module(alpha.id, "leads", False))

        enabled = _service_call(config, lambda s: s.get_enabled_modules(alpha.id))
        assert "leads" not in enabled
        assert "pipeline" in enabled
        assert _service_call(config, lambda s: s.is_module_enabled(beta.id, "leads"))

    def test_row_cannot_exceed_process_set(self, alpha, module_config):
        _put_row(alpha.id, "bugTracking", enabled=True)
        assert not _service_call(module_config, lambda s: s.is_module_enabled(alpha.id, "bugTracking"))

    def test_core_row_cannot_disable(self, alpha, module_config):
        _put_row(alpha.id, "clients", enabled=False)
        assert _service_call(module_config, lambda s: s.is_module_enabled(alpha.id, "clients"))

    def test_expired_trial_is_off(self, alpha, module_config):
        _put_row(
            alpha.id,
            "financeTracking",
            enabled=True,
            tier=ModuleTier.TRIAL,
            trial_ends_at=datetime.now(timezone.utc) - timedelta(days=1),
        )
        assert not _service_call(module_config, lambda s: s.is_module_enabled(alpha.id, "financeTracking"))

    def test_running_trial_is_on(self, alpha, module_config):
        _put_row(
            alpha.id,
            "financeTracking",
            enabled=True,
            tier=ModuleTier.TRIAL,
            trial_ends_at=datetime.now(timezone.utc) + timedelta(days=3),
        )
        assert _service_call(module_config, lambda s: s.is_module_enabled(alpha.id, "financeTracking"))

    def test_unknown_module_is_never_enabled(self, alpha, module_config):
        assert not _service_call(module_config, lambda s: s.is_module_enabled(alpha.id, "nope"))

    def test_set_tenant_module_upserts(self, alpha, module_config):
        _service_call(module_config, lambda s: s.set_tenant_module(alpha.id, "marketing", False))
        _service_call(module_config, lambda s: s.set_tenant_module(alpha.id, "MARKETING", True, ModuleTier.PREMIUM))

        rows = _service_call(module_config, lambda s: s.get_tenant_modules(alpha.id))
        assert len(rows) == 1
        assert rows[0].module_id == "marketing"
        assert rows[0].enabled is True
        assert rows[0].tier == ModuleTier.PREMIUM

    def test_disabling_core_module_raises(self, alpha, module_config):
        with pytest.raises(CoreModuleError):
            _service_call(module_config, lambda s: s.set_tenant_module(alpha.id, "projects", False))

    def test_unknown_module_raises(self, alpha, module_config):
        with pytest.raises(UnknownModuleError):
            _service_call(module_config, lambda s: s.set_tenant_module(alpha.id, "nope", True))

    def test_start_trial(self, alpha, module_config):
        row = _service_call(module_config, lambda s: s.start_module_trial(alpha.id, "financeTracking", days=7))

        assert row.tier == ModuleTier.TRIAL
        assert row.enabled is True
        remaining = row.trial_ends_at - datetime.now(timezone.utc)
        assert timedelta(days=6) < remaining <= timedelta(days=7)
        assert _service_call(module_config, lambda s: s.is_module_enabled(alpha.id, "financeTracking"))

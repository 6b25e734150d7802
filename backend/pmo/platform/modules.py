"""
Feature module catalog and process-level module configuration.

Modules are optional feature areas (finance tracking, marketing, ...) that
can be switched on per deployment (ENABLED_MODULES) and per tenant
(TenantModuleConfig rows, see pmo.services.module_service).

Enablement is enforced twice:
- mount time: include_module_router() skips routers of modules that are
  off for the process, so their paths do not exist (404)
- request time: pmo.api.dependencies.modules.require_module() rejects
  requests for modules that are off for the process or the tenant (403)

ModuleConfig is built once at startup, injected via app.state and never
mutated for the life of the process.

Usage:
    from pmo.platform.modules import ModuleConfig, include_module_router

    config = ModuleConfig.from_string(settings.enabled_modules)
    include_module_router(app, expenses.router, "financeTracking", config)
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock
from typing import Dict, FrozenSet, Iterable, Optional, Tuple

import yaml
from fastapi import APIRouter, FastAPI, Request

logger = logging.getLogger(__name__)

_CATALOG_PATH = Path(__file__).resolve().parent.parent / "config" / "modules.yml"


@dataclass(frozen=True)
class ModuleDefinition:
    id: str
    label: str
    core: bool = False
    default: bool = False
    dependencies: Tuple[str, ...] = ()


class ModuleCatalog:
    """Known modules, their dependencies and deprecated aliases."""

    def __init__(
        self,
        definitions: Dict[str, ModuleDefinition],
        deprecated: Optional[Dict[str, str]] = None,
    ):
        self.definitions = definitions
        self.deprecated = deprecated or {}
        self._by_lower = {module_id.lower(): module_id for module_id in definitions}
        self._deprecated_by_lower = {k.lower(): v for k, v in self.deprecated.items()}

        for definition in definitions.values():
            for dep in definition.dependencies:
                if dep not in definitions:
                    raise ValueError(
                        f"Module '{definition.id}' depends on unknown module '{dep}'"
                    )

    @classmethod
    def from_dict(cls, raw: dict) -> "ModuleCatalog":
        definitions = {}
        for module_id, entry in (raw.get("modules") or {}).items():
            entry = entry or {}
            definitions[module_id] = ModuleDefinition(
                id=module_id,
                label=entry.get("label", module_id),
                core=bool(entry.get("core", False)),
                default=bool(entry.get("core", False) or entry.get("default", False)),
                dependencies=tuple(entry.get("dependencies") or ()),
            )
        return cls(definitions, raw.get("deprecated") or {})

    @property
    def core_ids(self) -> FrozenSet[str]:
        return frozenset(m.id for m in self.definitions.values() if m.core)

    @property
    def default_ids(self) -> FrozenSet[str]:
        return frozenset(m.id for m in self.definitions.values() if m.default)

    def get(self, module_id: str) -> Optional[ModuleDefinition]:
        canonical = self.normalize(module_id)
        return self.definitions.get(canonical) if canonical else None

    def is_core(self, module_id: str) -> bool:
        definition = self.get(module_id)
        return bool(definition and definition.core)

    def normalize(self, module_id: str) -> Optional[str]:
        """
        Map a module id to its canonical catalog id.

        Matching is case-insensitive; deprecated ids map to their
        replacement. Returns None for unknown ids.
        """
        key = (module_id or "").strip().lower()
        if not key:
            return None
        if key in self._deprecated_by_lower:
            replacement = self._deprecated_by_lower[key]
            logger.warning(
                "Deprecated module id used",
                extra={"module_id": module_id, "replacement": replacement},
            )
            return replacement
        return self._by_lower.get(key)

    def with_dependencies(self, module_ids: Iterable[str]) -> FrozenSet[str]:
        """Close a set of module ids over their (transitive) dependencies."""
        enabled = set(module_ids)
        pending = list(enabled)
        while pending:
            definition = self.definitions.get(pending.pop())
            if definition is None:
                continue
            for dep in definition.dependencies:
                if dep not in enabled:
                    logger.info(
                        "Enabling module dependency",
                        extra={"module_id": definition.id, "dependency": dep},
                    )
                    enabled.add(dep)
                    pending.append(dep)
        return frozenset(enabled)


_catalog: Optional[ModuleCatalog] = None
_catalog_lock = Lock()


def load_module_catalog(path: Optional[str] = None) -> ModuleCatalog:
    """Load a catalog from YAML."""
    catalog_path = Path(path) if path else _CATALOG_PATH
    with open(catalog_path) as f:
        raw = yaml.safe_load(f) or {}
    catalog = ModuleCatalog.from_dict(raw)
    logger.info(
        "Module catalog loaded",
        extra={"path": str(catalog_path), "module_count": len(catalog.definitions)},
    )
    return catalog


def get_module_catalog() -> ModuleCatalog:
    """Thread-safe singleton access to the bundled catalog."""
    global _catalog
    if _catalog is None:
        with _catalog_lock:
            if _catalog is None:
                _catalog = load_module_catalog()
    return _catalog


def parse_enabled_modules(
    value: Optional[str],
    catalog: Optional[ModuleCatalog] = None,
) -> FrozenSet[str]:
    """
    Parse an ENABLED_MODULES value.

    - unset/blank: the catalog defaults
    - comma separated ids, case-insensitive, deprecated ids mapped
    - unknown ids ignored with a warning
    - core modules always included, dependencies added transitively
    """
    catalog = catalog or get_module_catalog()
    if not value or not value.strip():
        return catalog.with_dependencies(catalog.default_ids)

    requested = set()
    for raw_id in value.split(","):
        raw_id = raw_id.strip()
        if not raw_id:
            continue
        module_id = catalog.normalize(raw_id)
        if module_id is None:
            logger.warning("Unknown module in configuration, ignoring", extra={"module_id": raw_id})
            continue
        requested.add(module_id)

    return catalog.with_dependencies(requested | catalog.core_ids)


@dataclass(frozen=True)
class ModuleConfig:
    """Process-wide enabled module set. Immutable for the process lifetime."""

    enabled_modules: FrozenSet[str]
    catalog: ModuleCatalog = field(default_factory=get_module_catalog, compare=False, repr=False)

    @classmethod
    def from_string(cls, value: Optional[str], catalog: Optional[ModuleCatalog] = None) -> "ModuleConfig":
        catalog = catalog or get_module_catalog()
        return cls(enabled_modules=parse_enabled_modules(value, catalog), catalog=catalog)

    def is_enabled(self, module_id: str) -> bool:
        canonical = self.catalog.normalize(module_id)
        return canonical is not None and canonical in self.enabled_modules


def get_module_config(request: Request) -> ModuleConfig:
    """FastAPI dependency returning the injected process module config."""
    return request.app.state.module_config


def include_module_router(
    app: FastAPI,
    router: APIRouter,
    module_id: str,
    config: ModuleConfig,
) -> bool:
    """Mount a module's router only if the module is enabled for the process."""
    if not config.is_enabled(module_id):
        logger.info("Module disabled, routes not mounted", extra={"module_id": module_id})
        return False
    app.include_router(router)
    return True

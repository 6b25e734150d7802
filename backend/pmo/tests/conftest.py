"""
Root test configuration and fixtures.

Provides:
- an in-memory SQLite engine bound into pmo.database.session per test
- settings / module config / app / client fixtures
- two active tenants (alpha, beta), a suspended one (gamma) and users
"""

import os
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

# Set test environment
os.environ.setdefault("ENV", "test")

from pmo.config.settings import Settings
from pmo.constants.roles import PlatformRole, TenantRole
from pmo.database.session import configure_engine
from pmo.db_base import Base
from pmo.models.tenant import TenantStatus
from pmo.platform.modules import ModuleConfig

from tenant_test_support import add_member, make_tenant, make_user

TEST_JWT_SECRET = "test-secret-key-for-session-tokens"


@pytest.fixture(scope="session", autouse=True)
def _httpx_app_kwarg_patch():
    """
    Compatibility patch for httpx>=0.28 where Client(app=...) is not supported.

    Starlette's TestClient (used by FastAPI) passes app= into httpx.Client.
    This patch removes the app kwarg to avoid TypeError in environments
    with newer httpx while remaining safe for older versions.
    """
    import httpx

    original_init = httpx.Client.__init__

    def patched_init(self, *args, **kwargs):
        kwargs.pop("app", None)
        return original_init(self, *args, **kwargs)

    httpx.Client.__init__ = patched_init
    try:
        yield
    finally:
        httpx.Client.__init__ = original_init


@pytest.fixture
def db_engine():
    """
    Fresh in-memory database per test, bound into pmo.database.session.

    StaticPool keeps the single in-memory connection alive across sessions.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Import and create all tables
    import pmo.models  # noqa: F401
    from pmo.platform import audit  # noqa: F401 - Audit log model

    Base.metadata.create_all(bind=engine)
    configure_engine(engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def settings() -> Settings:
    return Settings(env="test", jwt_secret=TEST_JWT_SECRET)


@pytest.fixture
def relaxed_settings() -> Settings:
    return Settings(env="test", jwt_secret=TEST_JWT_SECRET, allow_missing_tenant_context=True)


@pytest.fixture
def module_config() -> ModuleConfig:
    """Core modules plus marketing and financeTracking."""
    return ModuleConfig.from_string("marketing,financeTracking")


@pytest.fixture
def make_app(db_engine):
    """Factory building an app bound to the test database."""
    from main import create_app

    def _make(settings: Settings, module_config: ModuleConfig = None):
        return create_app(settings=settings, module_config=module_config)

    return _make


@pytest.fixture
def app(make_app, settings, module_config):
    return make_app(settings, module_config)


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    yield TestClient(app)


# =============================================================================
# Tenants and users
# =============================================================================


@pytest.fixture
def alpha(db_engine):
    return make_tenant("Alpha", slug="alpha")


@pytest.fixture
def beta(db_engine):
    return make_tenant("Beta", slug="beta")


@pytest.fixture
def gamma(db_engine):
    return make_tenant("Gamma", slug="gamma", status=TenantStatus.SUSPENDED)


@pytest.fixture
def alice(alpha):
    """Member of Alpha only."""
    user = make_user("alice@alpha.test")
    add_member(alpha, user, TenantRole.MEMBER)
    return user


@pytest.fixture
def bob(beta):
    """Member of Beta only."""
    user = make_user("bob@beta.test")
    add_member(beta, user, TenantRole.MEMBER)
    return user


@pytest.fixture
def owner(alpha):
    """OWNER of Alpha."""
    user = make_user("owner@alpha.test")
    add_member(alpha, user, TenantRole.OWNER)
    return user


@pytest.fixture
def tenant_admin(alpha):
    """ADMIN of Alpha."""
    user = make_user("admin@alpha.test")
    add_member(alpha, user, TenantRole.ADMIN)
    return user


@pytest.fixture
def viewer(alpha):
    """VIEWER of Alpha."""
    user = make_user("viewer@alpha.test")
    add_member(alpha, user, TenantRole.VIEWER)
    return user


@pytest.fixture
def platform_admin(db_engine):
    """Platform operator with no tenant membership."""
    return make_user("ops@platform.test", role=PlatformRole.ADMIN)


# =============================================================================
# Markers
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "security: mark test as security-focused")
    config.addinivalue_line("markers", "slow: mark test as slow-running")

"""
Process configuration loaded from environment variables.

Settings are read once at startup and injected into the app factory.
Nothing downstream should call os.getenv for these values again.

Usage:
    from pmo.config.settings import Settings

    settings = Settings.from_env()
    settings.validate()
"""

import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

logger = logging.getLogger(__name__)

DEV_JWT_SECRET = "dev-only-insecure-secret"
DEFAULT_TOKEN_TTL_SECONDS = 7 * 24 * 60 * 60
DEFAULT_COOKIE_NAME = "pmo_session"

_TRUTHY = {"1", "true", "yes", "on"}


class ConfigurationError(Exception):
    """Raised when the process configuration is unsafe to run with."""
    pass


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUTHY


@dataclass(frozen=True)
class Settings:
    """Immutable application settings."""

    env: str = "development"
    database_url: Optional[str] = None
    jwt_secret: str = DEV_JWT_SECRET
    token_ttl_seconds: int = DEFAULT_TOKEN_TTL_SECONDS
    session_cookie_name: str = DEFAULT_COOKIE_NAME
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:5173"])
    enabled_modules: Optional[str] = None
    # Test/dev escape hatch: inactive tenants proceed without a tenant context.
    allow_missing_tenant_context: bool = False

    @property
    def is_production(self) -> bool:
        return self.env.lower() in ("production", "prod")

    @classmethod
    def from_env(cls) -> "Settings":
        cors = os.getenv("CORS_ORIGINS", "http://localhost:5173")
        return cls(
            env=os.getenv("ENV", "development"),
            database_url=os.getenv("DATABASE_URL"),
            jwt_secret=os.getenv("JWT_SECRET", DEV_JWT_SECRET),
            token_ttl_seconds=int(
                os.getenv("JWT_EXPIRES_IN_SECONDS", str(DEFAULT_TOKEN_TTL_SECONDS))
            ),
            session_cookie_name=os.getenv("SESSION_COOKIE_NAME", DEFAULT_COOKIE_NAME),
            cors_origins=[o.strip() for o in cors.split(",") if o.strip()],
            enabled_modules=os.getenv("ENABLED_MODULES"),
            allow_missing_tenant_context=_env_flag("ALLOW_MISSING_TENANT_CONTEXT"),
        )

    def validate(self) -> "Settings":
        """
        Refuse configurations that must never reach production.

        Raises:
            ConfigurationError: If the test-mode tenant relaxation or the
                development JWT secret is combined with a production env.
        """
        if self.is_production and self.allow_missing_tenant_context:
            raise ConfigurationError(
                "ALLOW_MISSING_TENANT_CONTEXT must not be enabled in production"
            )
        if self.is_production and self.jwt_secret == DEV_JWT_SECRET:
            raise ConfigurationError("JWT_SECRET must be set in production")
        if self.token_ttl_seconds <= 0:
            raise ConfigurationError("JWT_EXPIRES_IN_SECONDS must be positive")

        if self.allow_missing_tenant_context:
            logger.warning(
                "Tenant context relaxation enabled",
                extra={"env": self.env},
            )
        return self


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the process settings singleton."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env().validate()
    return _settings

"""
Tests for process settings and the production guard on the tenant relaxation.
"""

import pytest

from pmo.config.settings import DEV_JWT_SECRET, ConfigurationError, Settings


class TestFromEnv:
    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("ENV", "staging")
        monkeypatch.setenv("JWT_SECRET", "s3cret")
        monkeypatch.setenv("JWT_EXPIRES_IN_SECONDS", "60")
        monkeypatch.setenv("CORS_ORIGINS", "https://a.test, https://b.test,")
        monkeypatch.setenv("ENABLED_MODULES", "financeTracking")
        monkeypatch.setenv("ALLOW_MISSING_TENANT_CONTEXT", "yes")

        settings = Settings.from_env()

        assert settings.env == "staging"
        assert settings.jwt_secret == "s3cret"
        assert settings.token_ttl_seconds == 60
        assert settings.cors_origins == ["https://a.test", "https://b.test"]
        assert settings.enabled_modules == "financeTracking"
        assert settings.allow_missing_tenant_context is True

    def test_relaxation_off_by_default(self, monkeypatch):
        monkeypatch.delenv("ALLOW_MISSING_TENANT_CONTEXT", raising=False)
        assert Settings.from_env().allow_missing_tenant_context is False

    @pytest.mark.parametrize("value", ["0", "false", "off", ""])
    def test_falsey_flag_values(self, monkeypatch, value):
        monkeypatch.setenv("ALLOW_MISSING_TENANT_CONTEXT", value)
        assert Settings.from_env().allow_missing_tenant_context is False


@pytest.mark.security
class TestValidate:
    @pytest.mark.parametrize("env", ["production", "PRODUCTION", "prod"])
    def test_relaxation_refused_in_production(self, env):
        settings = Settings(env=env, jwt_secret="real-secret", allow_missing_tenant_context=True)
        with pytest.raises(ConfigurationError, match="ALLOW_MISSING_TENANT_CONTEXT"):
            settings.validate()

    def test_relaxation_allowed_in_test(self):
        settings = Settings(env="test", allow_missing_tenant_context=True)
        assert settings.validate() is settings

    def test_dev_secret_refused_in_production(self):
        with pytest.raises(ConfigurationError, match="JWT_SECRET"):
            Settings(env="production", jwt_secret=DEV_JWT_SECRET).validate()

    def test_non_positive_ttl_refused(self):
        with pytest.raises(ConfigurationError):
            Settings(env="test", token_ttl_seconds=0).validate()

    def test_production_without_relaxation_is_valid(self):
        settings = Settings(env="production", jwt_secret="real-secret")
        assert settings.is_production
        assert settings.validate() is settings

    def test_app_factory_refuses_relaxed_production(self, make_app):
        settings = Settings(env="production", jwt_secret="real-secret", allow_missing_tenant_context=True)
        with pytest.raises(ConfigurationError):
            make_app(settings)

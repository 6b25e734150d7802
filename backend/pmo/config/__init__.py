"""Process configuration and static catalogs."""

from pmo.config.settings import Settings, ConfigurationError, get_settings

__all__ = [
    "Settings",
    "ConfigurationError",
    "get_settings",
]

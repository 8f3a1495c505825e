# Configuration module for the FoundationDB session store
from .settings import (
    ConfigurationError,
    Environment,
    SessionStoreSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    "SessionStoreSettings",
    "Environment",
    "ConfigurationError",
    "get_settings",
    "clear_settings_cache",
]

"""
Configuration management for the FoundationDB session store.

This module provides centralized configuration loading and validation using
Pydantic settings. Values are read from SESSION_STORE_* environment
variables, a base .env file and an environment-specific .env file.
"""

import hashlib
import os
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from session.expiration import DEFAULT_EXPIRATION_MS
from session.key_codec import DEFAULT_HASH_ALGORITHM, DEFAULT_HASH_SALT

ENV_PREFIX = "SESSION_STORE_"


class Environment(str, Enum):
    """Supported deployment environments."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


def _detect_environment() -> Environment:
    """
    Detect the current environment from the ENVIRONMENT variable.

    Returns:
        Environment: The detected environment, defaults to DEVELOPMENT if not set.
    """
    env_value = os.environ.get("ENVIRONMENT", "development").lower().strip()
    try:
        return Environment(env_value)
    except ValueError:
        return Environment.DEVELOPMENT


def _get_env_files(environment: Environment) -> Tuple[str, ...]:
    """
    Get the .env files to load for the given environment.

    The base .env file is loaded first, then the environment-specific
    file overrides it.
    """
    env_file_map = {
        Environment.DEVELOPMENT: ".env.development",
        Environment.STAGING: ".env.staging",
        Environment.PRODUCTION: ".env.production",
    }
    return (".env", env_file_map.get(environment, ".env.development"))


class SessionStoreSettings(BaseSettings):
    """
    Session store settings loaded from environment variables.

    Every field maps to SESSION_STORE_<FIELD>, e.g. SESSION_STORE_DIRECTORY.
    The ENVIRONMENT variable (unprefixed) selects the .env file overlay.
    """

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        validation_alias="ENVIRONMENT",
        description="Deployment environment (development, staging, production)"
    )

    # Backend
    backend: str = Field(
        default="foundationdb",
        description="Backend type: 'foundationdb' or 'memory'"
    )
    cluster_file: Optional[str] = Field(
        default=None,
        description="Path to the FoundationDB cluster file"
    )
    directory: str = Field(
        default="sessions",
        description="Directory path isolating the store's keys, '/'-separated"
    )

    # Session lifetime
    default_expiration_ms: int = Field(
        default=DEFAULT_EXPIRATION_MS,
        gt=0,
        description="Lifetime of sessions without a cookie expiry, in milliseconds"
    )

    # Session id hashing
    hash_enabled: bool = Field(
        default=False,
        description="Store a salted digest of the session id instead of the id"
    )
    hash_salt: str = Field(
        default=DEFAULT_HASH_SALT,
        description="Salt prepended to session ids before hashing"
    )
    hash_algorithm: str = Field(
        default=DEFAULT_HASH_ALGORITHM,
        description="hashlib algorithm used for session id hashing"
    )

    # Serialization and reads
    stringify: bool = Field(
        default=False,
        description="Store sessions as JSON text instead of embedded objects"
    )
    snapshot_reads: bool = Field(
        default=False,
        description="Use snapshot reads for get/length"
    )
    health_check_timeout: float = Field(
        default=5.0,
        gt=0,
        le=60,
        description="Health check timeout in seconds"
    )

    # Observability
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    otel_endpoint: Optional[str] = Field(
        default=None,
        description="OpenTelemetry collector endpoint URL"
    )
    otel_service_name: str = Field(
        default="fdb-session-store",
        description="Service name for OpenTelemetry traces"
    )

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore"
    )

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        """Validate that backend is either 'foundationdb' or 'memory'."""
        v = v.strip().lower()
        if v not in {"foundationdb", "memory"}:
            raise ValueError("backend must be 'foundationdb' or 'memory'")
        return v

    @field_validator("directory")
    @classmethod
    def validate_directory(cls, v: str) -> str:
        """Validate that the directory path has at least one component."""
        parts = [part for part in v.strip().split("/") if part]
        if not parts:
            raise ValueError("directory cannot be empty")
        return "/".join(parts)

    @field_validator("hash_algorithm")
    @classmethod
    def validate_hash_algorithm(cls, v: str) -> str:
        """Validate that hashlib supports the hash algorithm."""
        v = v.strip().lower()
        if v not in {name.lower() for name in hashlib.algorithms_available}:
            raise ValueError(f"hash_algorithm '{v}' is not supported by hashlib")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that log_level is a valid logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v = v.strip().upper()
        if v not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(sorted(valid_levels))}")
        return v

    @model_validator(mode="after")
    def validate_backend_for_environment(self) -> "SessionStoreSettings":
        """The in-memory backend loses sessions on restart; keep it out of production."""
        if self.backend == "memory" and self.environment == Environment.PRODUCTION:
            raise ValueError("backend 'memory' is not allowed in production")
        return self


class ConfigurationError(Exception):
    """Exception raised when configuration validation fails."""

    def __init__(self, message: str, missing_fields: Optional[List[str]] = None,
                 invalid_fields: Optional[dict] = None):
        self.message = message
        self.missing_fields = missing_fields or []
        self.invalid_fields = invalid_fields or {}
        super().__init__(self.format_error_message())

    def format_error_message(self) -> str:
        """Format a descriptive error message listing all issues."""
        parts = [self.message]

        if self.missing_fields:
            parts.append(f"\nMissing required fields: {', '.join(self.missing_fields)}")

        if self.invalid_fields:
            invalid_parts = [f"  - {field}: {error}" for field, error in self.invalid_fields.items()]
            parts.append("\nInvalid field values:\n" + "\n".join(invalid_parts))

        return "".join(parts)


def create_settings_for_environment(
    environment: Optional[Environment] = None
) -> SessionStoreSettings:
    """
    Create settings for a specific environment.

    Args:
        environment: Optional environment override. If not provided, detected
            from the ENVIRONMENT variable.

    Returns:
        SessionStoreSettings: Validated settings for the environment.

    Raises:
        ConfigurationError: If settings are missing or invalid.
    """
    if environment is None:
        environment = _detect_environment()

    env_files = [f for f in _get_env_files(environment) if Path(f).exists()]

    try:
        class EnvironmentSettings(SessionStoreSettings):
            model_config = SettingsConfigDict(
                env_prefix=ENV_PREFIX,
                env_file=tuple(env_files) or None,
                env_file_encoding="utf-8",
                case_sensitive=False,
                populate_by_name=True,
                extra="ignore"
            )

        return EnvironmentSettings(environment=environment)
    except Exception as e:
        missing_fields = []
        invalid_fields = {}

        if hasattr(e, "errors"):
            for error in e.errors():
                field_name = ".".join(str(loc) for loc in error.get("loc", []))
                if error.get("type", "") == "missing":
                    missing_fields.append(field_name)
                else:
                    invalid_fields[field_name] = error.get("msg", str(error))

        raise ConfigurationError(
            f"Failed to load configuration for environment '{environment.value}'",
            missing_fields=missing_fields,
            invalid_fields=invalid_fields
        ) from e


# Global settings cache
_settings_cache: Optional[SessionStoreSettings] = None


def get_settings() -> SessionStoreSettings:
    """
    Get the session store settings singleton.

    Settings are loaded once and cached for subsequent calls.

    Raises:
        ConfigurationError: If settings are missing or invalid.
    """
    global _settings_cache

    if _settings_cache is None:
        _settings_cache = create_settings_for_environment()

    return _settings_cache


def clear_settings_cache() -> None:
    """
    Clear the settings cache.

    This is primarily useful for testing to allow reloading settings
    with different environment variables.
    """
    global _settings_cache
    _settings_cache = None

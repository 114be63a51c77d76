"""
Centralized configuration management for the relationship assessment application.

Provides environment-specific configuration with validation, type safety,
and settings management using Pydantic.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings

PACKAGE_DIR = Path(__file__).resolve().parent.parent
DEFAULT_BANK_PATH = PACKAGE_DIR / "data" / "question_bank.json"

# Excludes 0/O, 1/I so keys can be read back over the phone.
UNAMBIGUOUS_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"

# Section names accepted by load_settings_from_file, mapped to their env prefixes
SECTION_PREFIXES = {
    "app": "APP_",
    "store": "STORE_",
    "database": "DB_",
    "db": "DB_",
    "license": "LICENSE_",
    "admin": "ADMIN_",
    "logging": "LOG_",
    "log": "LOG_",
}


class StoreConfig(BaseSettings):
    """
    Persistent key-value store settings.

    Example:
        >>> StoreConfig(backend="file", data_dir="./data").backend
        'file'
    """

    backend: Literal["file", "sqlite", "memory", "http"] = Field(
        "file", description="Where the license pool and config blobs live"
    )
    data_dir: str = Field("./data", description="Directory for the file backend and exports")
    remote_url: str | None = Field(None, description="Base URL of the HTTP store server")
    timeout_seconds: float = Field(5.0, gt=0, description="HTTP store timeout (seconds)")

    model_config = {"env_prefix": "STORE_", "case_sensitive": False}

    @model_validator(mode="after")
    def validate_remote(self):
        """The http backend needs somewhere to talk to."""
        if self.backend == "http" and not self.remote_url:
            raise ValueError("STORE_REMOTE_URL is required for the http backend")
        return self


class DatabaseConfig(BaseSettings):
    """
    SQLite settings for the SQL blob backend.

    Example:
        >>> DatabaseConfig(sqlite_path="./test.db").get_connection_url()
        'sqlite:///./test.db'
    """

    sqlite_path: str = Field("./rpi_assessment.db", description="SQLite database file path")
    pool_pre_ping: bool = Field(True, description="Enable connection pool pre-ping")
    echo: bool = Field(False, description="Enable SQL query logging")

    model_config = {"env_prefix": "DB_", "case_sensitive": False}

    @field_validator("sqlite_path")
    def validate_sqlite_path(cls, v):
        """Ensure the parent directory exists and the file has a suffix."""
        if v and v != ":memory:":
            path = Path(v)
            path.parent.mkdir(parents=True, exist_ok=True)
            if not path.suffix:
                v = str(path.with_suffix(".db"))
        return v

    def get_connection_url(self) -> str:
        return f"sqlite:///{self.sqlite_path}"

    def get_engine_options(self) -> dict[str, Any]:
        return {
            "echo": self.echo,
            "future": True,
            "pool_pre_ping": self.pool_pre_ping,
        }


class LicenseConfig(BaseSettings):
    """
    License key generation and device identity settings.

    Example:
        >>> LicenseConfig().key_length
        12
    """

    key_length: int = Field(12, ge=4, le=64, description="Characters per license key")
    key_alphabet: str = Field(UNAMBIGUOUS_ALPHABET, min_length=2, description="Key characters")
    device_id_prefix: str = Field("DEV-", description="Static tag prepended to device ids")
    device_id_length: int = Field(8, ge=4, le=64, description="Random characters per device id")
    default_valid_days: int = Field(30, ge=1, description="Default validity after activation")
    default_max_devices: int = Field(2, ge=1, description="Default device quota per key")
    export_prefix: str = Field("RPI-keys", description="Filename prefix for CSV exports")

    model_config = {"env_prefix": "LICENSE_", "case_sensitive": False}

    @field_validator("key_alphabet")
    def validate_alphabet(cls, v):
        if len(set(v)) != len(v):
            raise ValueError("key_alphabet must not repeat characters")
        return v


class AdminConfig(BaseSettings):
    """Credentials for the admin panel gate. Not a security boundary."""

    username: str = Field("admin", min_length=1)
    password: str = Field("admin", min_length=1)

    model_config = {"env_prefix": "ADMIN_", "case_sensitive": False}


class LoggingConfig(BaseSettings):
    """
    Logging configuration settings.

    Example:
        >>> LoggingConfig(level="DEBUG", file_path=None).structured
        True
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        "INFO", description="Minimum logging level"
    )
    file_path: str | None = Field("./logs/app.log", description="Log file path")
    structured: bool = Field(True, description="Use structured JSON logging")
    console_enabled: bool = Field(True, description="Enable console output")

    model_config = {"env_prefix": "LOG_", "case_sensitive": False}


class ApplicationConfig(BaseSettings):
    """
    Main application configuration.

    Example:
        >>> config = get_settings()
        >>> config.app.enable_verification
        True
    """

    title: str = Field("Relationship Assessment", description="Application title")
    environment: Literal["development", "testing", "production"] = Field(
        "development", description="Application environment"
    )
    debug: bool = Field(False, description="Enable debug mode")
    version: str = Field("0.1.0", description="Application version")

    enable_verification: bool = Field(
        True, description="Default for the license gate when the store holds no config"
    )
    bank_path: str = Field(str(DEFAULT_BANK_PATH), description="Question bank JSON file")

    model_config = {"env_prefix": "APP_", "case_sensitive": False}

    @model_validator(mode="after")
    def debug_implies_development(self):
        """Ensure debug mode is only enabled in development."""
        if self.debug and self.environment == "production":
            raise ValueError("Debug mode cannot be enabled in production")
        return self


class Settings:
    """
    Complete application settings container with lazily built sections.

    Example:
        >>> settings = get_settings()
        >>> settings.license.key_length
        12
    """

    def __init__(self):
        self._app: ApplicationConfig | None = None
        self._store: StoreConfig | None = None
        self._database: DatabaseConfig | None = None
        self._license: LicenseConfig | None = None
        self._admin: AdminConfig | None = None
        self._logging: LoggingConfig | None = None

    @property
    def app(self) -> ApplicationConfig:
        if self._app is None:
            self._app = ApplicationConfig()
        return self._app

    @property
    def store(self) -> StoreConfig:
        if self._store is None:
            self._store = StoreConfig()
        return self._store

    @property
    def database(self) -> DatabaseConfig:
        if self._database is None:
            self._database = DatabaseConfig()
        return self._database

    @property
    def license(self) -> LicenseConfig:
        if self._license is None:
            self._license = LicenseConfig()
        return self._license

    @property
    def admin(self) -> AdminConfig:
        if self._admin is None:
            self._admin = AdminConfig()
        return self._admin

    @property
    def logging(self) -> LoggingConfig:
        if self._logging is None:
            if any(name.upper() == "LOG_LEVEL" for name in os.environ):
                self._logging = LoggingConfig()
            else:
                level = "DEBUG" if self.app.debug else "INFO"
                if self.app.environment == "production":
                    level = "WARNING"
                self._logging = LoggingConfig(level=level)
        return self._logging

    def is_development(self) -> bool:
        return self.app.environment == "development"

    def get_environment_info(self) -> dict[str, Any]:
        """Get summary of current environment configuration."""
        return {
            "environment": self.app.environment,
            "version": self.app.version,
            "debug": self.app.debug,
            "store_backend": self.store.backend,
            "logging_level": self.logging.level,
            "verification_default": self.app.enable_verification,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get application settings instance (cached).

    Returns:
        Settings instance with all configuration loaded
    """
    return Settings()


def load_settings_from_file(file_path: str) -> Settings:
    """
    Load settings from a JSON configuration file.

    Each top-level object names a settings section, so ``{"store": {"backend": "sqlite"}}``
    becomes ``STORE_BACKEND=sqlite`` and ``{"logging": {"level": "DEBUG"}}`` becomes
    ``LOG_LEVEL=DEBUG``.

    Raises:
        FileNotFoundError: If configuration file doesn't exist
        ValueError: If file format is unsupported or a section is unknown
    """
    config_path = Path(file_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {file_path}")

    if config_path.suffix.lower() != ".json":
        raise ValueError(f"Unsupported configuration file format: {config_path.suffix}")

    with open(config_path, encoding="utf-8") as f:
        config_data = json.load(f)

    for section, values in config_data.items():
        if not isinstance(values, dict):
            continue
        prefix = SECTION_PREFIXES.get(section.lower())
        if prefix is None:
            raise ValueError(f"Unknown configuration section: {section}")
        for key, value in values.items():
            os.environ[f"{prefix}{key.upper()}"] = str(value)

    get_settings.cache_clear()
    return get_settings()


def reset_settings() -> None:
    """Reset settings cache to reload from environment."""
    get_settings.cache_clear()

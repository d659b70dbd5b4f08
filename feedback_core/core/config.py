"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

The database descriptor itself is not part of these settings: it is resolved
at runtime by ``DatabaseConfigStore`` from ``DB_*`` variables or the persisted
JSON file, because it can change while the process runs (first-run setup).
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field(
        "json",
        description="Log format: 'json' (structured) or 'plain'",
    )
    output: str = Field(
        "stdout",
        description="Log destination: 'stdout' or 'file'",
    )
    file_path: str | None = Field(
        None,
        description="Log file path when output is 'file'",
    )
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
    )
    backup_count: int = Field(5, description="Number of rotated log files to keep")
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to propagate the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class StorageSettings(BaseSettings):
    """Filesystem locations for the persisted descriptor and embedded database."""

    config_path: Path = Field(
        PROJECT_ROOT / "config" / "db_config.json",
        description="Where the database descriptor is persisted after setup",
    )
    data_dir: Path = Field(
        PROJECT_ROOT / "data",
        description="Directory holding the SQLite database file",
    )
    sqlite_filename: str = Field(
        "library_feedback.sqlite",
        description="SQLite database file name inside data_dir",
    )

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        case_sensitive=False,
    )


class DatabaseEnvSettings(BaseSettings):
    """Database descriptor fields supplied through the environment.

    Read on demand (not cached in ``settings``) so a container can be
    auto-configured without a descriptor file.
    """

    type: str | None = Field(None, description="Backend kind: mysql or sqlite")
    host: str | None = Field(None, description="MySQL host")
    port: int | None = Field(None, description="MySQL port")
    user: str | None = Field(None, description="MySQL user")
    password: str | None = Field(
        None,
        validation_alias=AliasChoices("DB_PASSWORD", "DB_PASS"),
        description="MySQL password (DB_PASSWORD or DB_PASS)",
    )
    name: str | None = Field(None, description="Database (schema) name")

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        case_sensitive=False,
    )


class LLMSettings(BaseSettings):
    """LLM provider configuration for AI trend analysis.

    AI features are optional: without an API key the factory returns no
    client and the trend service reports itself unavailable.
    """

    provider: str = Field(
        "openai",
        description="LLM provider name (currently only openai)",
    )
    model: str = Field(
        "gpt-4o-mini",
        description="Model name (e.g., gpt-4o, gpt-4o-mini)",
    )
    api_key: str | None = Field(
        None,
        description="API key for the provider; AI features are disabled without it",
    )
    base_url: str | None = Field(
        None,
        description="Custom API endpoint for OpenAI-compatible services",
    )
    timeout_seconds: float = Field(
        45.0,
        description="Request timeout in seconds",
    )

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        case_sensitive=False,
    )


class AuthSettings(BaseSettings):
    """Signed token configuration (unsubscribe links, bearer tokens)."""

    jwt_secret: str = Field(
        "change-me",
        description="HMAC secret used to sign tokens",
    )
    jwt_algorithm: str = Field("HS256", description="JWT signing algorithm")
    unsubscribe_token_days: int = Field(
        30,
        description="Lifetime of unsubscribe tokens in email links",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="AUTH_",
        case_sensitive=False,
    )


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )

    rate_limit_enabled: bool = Field(
        True,
        description="Enable database-backed rate limiting per client IP",
    )
    rate_limit_requests: int = Field(
        100,
        description="Maximum number of requests allowed per window (per client)",
        ge=1,
    )
    rate_limit_window_seconds: int = Field(
        15 * 60,
        description="Rate limit window size in seconds",
        ge=1,
    )
    rate_limit_include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers when throttling",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if a setting is malformed.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=AppSettings)
    log: LogSettings = Field(default_factory=LogSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()

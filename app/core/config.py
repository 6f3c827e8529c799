"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator
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

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_log_settings() -> "LogSettings":
    """Build log settings from environment."""

    return LogSettings()


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment."""

    return AppSettings()


def _build_rate_limit_settings() -> "RateLimitSettings":
    """Build rate limit settings from environment.

    Nested settings are created via default_factory so that each section reads
    its own prefixed environment variables at construction time.
    """

    return RateLimitSettings()


class LogSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field("INFO", description="Root log level")
    format: Literal["json", "plain"] = Field(
        "json",
        description="Log output format",
    )
    output: Literal["stdout", "file"] = Field(
        "stdout",
        description="Where to write logs",
    )
    file_path: str | None = Field(
        None,
        description="Log file path when output=file",
    )
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Number of rotated files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to propagate the correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    api_key_required: bool = Field(
        True,
        description="Whether admin endpoints require an API key",
    )
    api_keys: str | None = Field(
        None,
        description="Comma-separated list of valid admin API keys",
    )
    admin_path_prefix: str = Field(
        "/v1/admin",
        description="Path prefix of administrator endpoints (exempt from maintenance mode)",
    )
    maintenance_retry_after_seconds: int = Field(
        3600,
        description="Retry-After hint sent while maintenance mode is on",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class RateLimitRule(BaseModel):
    """One rate limit rule applied to every path under ``path_prefix``."""

    name: str = Field(..., min_length=1, description="Rule identifier, also the store key prefix")
    path_prefix: str = Field(..., description="Requests whose path starts with this are gated")
    strategy: Literal["fixed", "sliding", "adaptive"] = Field(
        "sliding",
        description="Limiter implementation",
    )
    window_seconds: int = Field(60, ge=1, description="Window length in seconds")
    max_requests: int = Field(5, ge=1, description="Requests allowed per window (base limit for adaptive)")
    adaptation_factor: float = Field(
        0.5,
        ge=0.0,
        le=1.0,
        description="How strongly the downstream error rate shrinks the adaptive limit",
    )
    dynamic: bool = Field(
        False,
        description="Take window/limit from the administrator runtime settings",
    )


def _default_rules() -> list[RateLimitRule]:
    return [
        RateLimitRule(
            name="admin",
            path_prefix="/v1/admin",
            strategy="sliding",
            window_seconds=60,
            max_requests=30,
        ),
        RateLimitRule(
            name="api",
            path_prefix="/v1",
            strategy="sliding",
            window_seconds=60,
            max_requests=100,
            dynamic=True,
        ),
    ]


class RateLimitSettings(BaseSettings):
    """Rate limiting configuration.

    ``RATE_LIMIT_RULES`` accepts a JSON list of rule objects, e.g.
    ``[{"name": "query", "path_prefix": "/v1/query", "max_requests": 5}]``.
    Rule names must be unique.

    A login attempt lockout (5 attempts per 15 minutes) is a fixed rule on the
    login path, e.g. ``{"name": "login", "path_prefix": "/login",
    "strategy": "fixed", "window_seconds": 900, "max_requests": 5}``.
    """

    enabled: bool = Field(True, description="Enable rate limiting middleware")
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers",
    )
    backend: Literal["memory", "redis"] = Field(
        "memory",
        description="Key-value store backing the limiters",
    )
    redis_url: str = Field(
        "redis://localhost:6379/0",
        description="Redis connection URL when backend=redis",
    )
    ip_whitelist: str | None = Field(
        None,
        description="Comma-separated IPs or CIDR blocks that bypass rate limiting",
    )
    ip_blacklist: str | None = Field(
        None,
        description="Comma-separated IPs or CIDR blocks rejected with 403 IP_BLOCKED",
    )
    default_window_seconds: int = Field(
        60,
        ge=1,
        description="Runtime window used by dynamic rules until an administrator changes it",
    )
    default_max_requests: int = Field(
        100,
        ge=1,
        description="Runtime limit used by dynamic rules until an administrator changes it",
    )
    rules: list[RateLimitRule] = Field(default_factory=_default_rules)

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )

    @field_validator("rules")
    @classmethod
    def rule_names_unique(cls, rules: list[RateLimitRule]) -> list[RateLimitRule]:
        # Rule names namespace the store keys; a repeat would share state
        seen: set[str] = set()
        for rule in rules:
            if rule.name in seen:
                raise ValueError(f"duplicate rate limit rule name: '{rule.name}'")
            seen.add(rule.name)
        return rules


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are invalid.
    """

    app_env: str = APP_ENV
    log: LogSettings = Field(default_factory=_build_log_settings)
    app: AppSettings = Field(default_factory=_build_app_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
settings = Settings()

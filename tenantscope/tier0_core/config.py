"""
tenantscope.tier0_core.config
──────────────────────────────
Typed configuration with env layering. Reads from .env → environment
variables. All fields are typed via Pydantic; invalid values fail when the
config is first loaded, not in the middle of a transaction.

Minimal stack: pydantic-settings + python-dotenv
"""
from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class TenantScopeConfig(BaseSettings):
    """
    Typed configuration for the tenant-scoped data layer.
    Database settings keep their conventional DATABASE_* names; everything
    owned by this library is prefixed with TENANTSCOPE_.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ───────────────────────────────────────────────────────────
    app_name: str = Field(default="tenantscope", alias="APP_NAME")
    environment: str = Field(default="development", alias="APP_ENV")

    # ── Database / pool ───────────────────────────────────────────────────────
    database_url: str = Field(
        default="sqlite+aiosqlite:///./dev.db",
        alias="DATABASE_URL",
    )
    database_pool_size: int = Field(default=5, alias="DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(default=10, alias="DATABASE_MAX_OVERFLOW")
    database_pool_timeout: float = Field(default=30.0, alias="DATABASE_POOL_TIMEOUT")
    database_echo: bool = Field(default=False, alias="DATABASE_ECHO")

    # ── Logging ───────────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", alias="TENANTSCOPE_LOG_LEVEL")
    log_format: str = Field(default="json", alias="TENANTSCOPE_LOG_FORMAT")

    # ── Error reporting ───────────────────────────────────────────────────────
    error_backend: str = Field(default="none", alias="TENANTSCOPE_ERROR_BACKEND")

    # ── Row isolation ─────────────────────────────────────────────────────────
    # Processes that serve end-user requests should set this to false so the
    # isolation bypass cannot be reached from a request handler at all.
    allow_service_context: bool = Field(
        default=True, alias="TENANTSCOPE_ALLOW_SERVICE_CONTEXT"
    )

    @field_validator("environment")
    @classmethod
    def validate_env(cls, v: str) -> str:
        allowed = {"development", "staging", "production", "test"}
        if v.lower() not in allowed:
            raise ValueError(f"environment must be one of {allowed}, got {v!r}")
        return v.lower()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        if v.lower() not in {"json", "console"}:
            raise ValueError(f"log_format must be 'json' or 'console', got {v!r}")
        return v.lower()

    @field_validator("database_pool_timeout")
    @classmethod
    def validate_pool_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("database_pool_timeout must be positive")
        return v

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


@lru_cache(maxsize=1)
def get_config() -> TenantScopeConfig:
    """
    Return the singleton config. Cached after first call.
    Call _reset_config() in tests to pick up new env vars.
    """
    return TenantScopeConfig()


def _reset_config() -> None:
    """For tests: clear the config cache."""
    get_config.cache_clear()

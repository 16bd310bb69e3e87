from __future__ import annotations

from pathlib import Path
from urllib.parse import urlparse

from pydantic import AnyUrl, Field
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_FILE = Path(__file__).resolve().parents[2] / ".env"

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(str(ENV_FILE), ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # App
    app_env: str = Field(default="development", alias="APP_ENV")
    frontend_url: AnyUrl = Field(default="http://localhost:5173", alias="FRONTEND_URL")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Supabase
    supabase_url: AnyUrl = Field(alias="SUPABASE_URL")
    supabase_anon_key: str = Field(alias="SUPABASE_ANON_KEY")
    supabase_service_role_key: str = Field(alias="SUPABASE_SERVICE_ROLE_KEY")
    http_timeout_seconds: float = Field(default=30.0, alias="HTTP_TIMEOUT_SECONDS")

    # Observability
    sentry_dsn: str | None = Field(default=None, alias="SENTRY_DSN")
    sentry_traces_sample_rate: float = Field(
        default=0.0, alias="SENTRY_TRACES_SAMPLE_RATE"
    )

    # Limits
    featured_habits_limit: int = Field(default=6, alias="FEATURED_HABITS_LIMIT")
    auth_rate_limit_per_minute: int = Field(
        default=240, alias="AUTH_RATE_LIMIT_PER_MINUTE"
    )
    provision_rate_limit_per_minute: int = Field(
        default=20, alias="PROVISION_RATE_LIMIT_PER_MINUTE"
    )

    @model_validator(mode="after")
    def validate_runtime_constraints(self) -> "Settings":
        env = (self.app_env or "").strip().lower()
        is_prod = env in {"production", "prod"}

        frontend_host = (urlparse(str(self.frontend_url)).hostname or "").lower()
        if is_prod and frontend_host in {"localhost", "127.0.0.1"}:
            raise ValueError(
                "Invalid FRONTEND_URL for production: localhost is not allowed. "
                "Set FRONTEND_URL to your public web domain."
            )

        supabase_host = (urlparse(str(self.supabase_url)).hostname or "").lower()
        if is_prod and supabase_host in {"localhost", "127.0.0.1"}:
            raise ValueError(
                "Invalid SUPABASE_URL for production: localhost is not allowed."
            )

        if self.log_level.strip().upper() not in _LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {sorted(_LOG_LEVELS)}")
        if not (1 <= self.featured_habits_limit <= 100):
            raise ValueError("FEATURED_HABITS_LIMIT must be 1..100")
        if self.auth_rate_limit_per_minute < 0:
            raise ValueError("AUTH_RATE_LIMIT_PER_MINUTE must be >= 0")
        if self.provision_rate_limit_per_minute < 0:
            raise ValueError("PROVISION_RATE_LIMIT_PER_MINUTE must be >= 0")
        if self.http_timeout_seconds <= 0:
            raise ValueError("HTTP_TIMEOUT_SECONDS must be positive")

        return self


settings = Settings()  # type: ignore[call-arg]  # singleton import via env settings

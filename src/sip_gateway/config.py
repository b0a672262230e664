"""
Application configuration with environment-driven settings.
"""

import os
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "sip-gateway"
    app_env: Literal["dev", "qa", "uat", "prod"] = "dev"
    debug: bool = False
    log_level: str = "INFO"

    # Storage
    store_backend: Literal["memory", "sql"] = Field(
        default="memory",
        description="Backend for tokens, websocket sessions and webhook registrations",
    )
    database_url: str = Field(
        default="sqlite+aiosqlite:///./sip_gateway.db",
        description="SQLAlchemy async URL used when store_backend=sql",
    )

    # JWT Configuration
    jwt_secret_key: str = Field(
        default="change-me-in-production-use-secrets-manager",
        description="Secret key for signing identity tokens",
    )
    jwt_algorithm: str = Field(
        default="HS256",
        description="JWT signing algorithm",
    )
    jwt_expire_hours: int = Field(
        default=24,
        ge=1,
        le=24 * 30,
        description="Identity token lifetime in hours",
    )

    # Local demo users (plain passwords, hashed with bcrypt at startup)
    admin_password: str = Field(default="admin123")
    operator_password: str = Field(default="operator123")
    user_password: str = Field(default="user123")
    bcrypt_rounds: int = Field(default=12, ge=4, le=16)

    # SSO
    sso_verify_url: str = Field(
        default="https://login.afterdarksys.com/api/verify",
        description="Identity provider endpoint that validates SSO tokens",
    )

    # Webhooks
    webhook_secret: str = Field(
        default="",
        description="Shared secret for X-AEIMS-Signature; empty disables verification",
    )
    webhook_public_url: str = Field(
        default="http://localhost:3005/webhooks/events",
        description="URL advertised when registering webhooks with the backend",
    )

    # Billing
    call_rate_per_minute: float = Field(default=0.05, ge=0)

    # Real-time delivery
    subscriber_queue_size: int = Field(default=100, ge=1, le=10_000)
    subscriber_overflow_policy: Literal["drop_oldest", "disconnect"] = "drop_oldest"

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000,https://afterdarksys.com",
        description="Comma-separated list of allowed CORS origins",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Log levels are stored upper-case."""
        return str(v).strip().upper()

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def webhook_verification_enabled(self) -> bool:
        return bool(self.webhook_secret)


@lru_cache
def _get_settings_cached() -> Settings:
    return Settings()


def get_settings() -> Settings:
    # Under pytest, env vars change between tests (monkeypatch): never
    # hand back a frozen instance there.
    if os.environ.get("PYTEST_CURRENT_TEST"):
        return Settings()
    return _get_settings_cached()

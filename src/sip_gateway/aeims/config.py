"""
AEIMS backend configuration.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AeimsConfig(BaseSettings):
    """Telephony backend (AEIMS) client configuration from environment."""

    model_config = SettingsConfigDict(
        env_prefix="AEIMS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    base_url: str = Field(default="http://localhost:8080")
    timeout_seconds: float = Field(default=30.0, gt=0, le=300)
    user_agent: str = Field(default="AfterDarkSystems-SIP-Gateway/1.0")

    # Retry policy
    retry_attempts: int = Field(default=3, ge=1, le=10)
    retry_base_delay_seconds: float = Field(default=1.0, ge=0, le=60)
    non_idempotent_max_retries: int = Field(default=1, ge=0, le=1)

    # Credentials. api_token is used as-is; client_id/client_secret enable
    # re-authentication when the backend rejects the current token.
    api_token: str = Field(default="")
    client_id: str = Field(default="")
    client_secret: str = Field(default="")
    auth_path: str = Field(default="/api/auth/token")

    @property
    def can_reauthenticate(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}{path}"

"""
AEIMS client factory.

Single place where the backend client, its credential manager and the
AuthExpired wiring are assembled.
"""

from __future__ import annotations

from functools import lru_cache

import httpx

from sip_gateway.aeims.client import AeimsClient
from sip_gateway.aeims.config import AeimsConfig
from sip_gateway.aeims.credentials import CredentialManager, client_credentials_authenticator
from sip_gateway.shared.logging import get_logger

logger = get_logger(__name__)


def _mask(s: str, keep: int = 6) -> str:
    if not s:
        return ""
    if len(s) <= keep:
        return "*" * len(s)
    return f"{s[:keep]}***"


@lru_cache(maxsize=1)
def get_aeims_config() -> AeimsConfig:
    """Return cached AeimsConfig loaded from OS env + .env."""
    return AeimsConfig()


def build_aeims_client(
    config: AeimsConfig | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> AeimsClient:
    """Create a client; attach a credential manager when re-auth is configured."""
    cfg = config or get_aeims_config()

    logger.info(
        "AEIMS config resolved",
        extra={
            "base_url": cfg.base_url,
            "api_token": _mask(cfg.api_token),
            "client_id": _mask(cfg.client_id),
            "timeout_seconds": cfg.timeout_seconds,
            "retry_attempts": cfg.retry_attempts,
            "non_idempotent_max_retries": cfg.non_idempotent_max_retries,
        },
    )

    if not cfg.can_reauthenticate:
        return AeimsClient(cfg, http_client=http_client)

    auth_http = http_client or httpx.AsyncClient(timeout=httpx.Timeout(cfg.timeout_seconds))
    credentials = CredentialManager(
        client_credentials_authenticator(cfg, auth_http),
        initial_token=cfg.api_token or None,
    )
    client = AeimsClient(cfg, http_client=http_client, token_source=lambda: credentials.current)
    client.on_auth_expired(credentials.handle_auth_expired)
    return client

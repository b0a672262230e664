"""
Cached backend credential with single-flight refresh.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone

import httpx

from sip_gateway.aeims.config import AeimsConfig
from sip_gateway.shared.exceptions import UpstreamAuthExpiredError
from sip_gateway.shared.logging import get_logger

logger = get_logger(__name__)

Authenticator = Callable[[], Awaitable[str]]


@dataclass(frozen=True)
class AuthExpired:
    """Signal emitted by the client when the backend rejects its credential."""

    operation: str
    stale_token: str | None
    at: datetime


class CredentialManager:
    """Holds the current backend token and refreshes it at most once at a time.

    Callers that discover the same stale token concurrently all wait on the
    one in-flight refresh and then reuse its result.
    """

    def __init__(self, authenticate: Authenticator, initial_token: str | None = None) -> None:
        self._authenticate = authenticate
        self._token = initial_token or None
        self._lock = asyncio.Lock()
        self.refresh_count = 0

    @property
    def current(self) -> str | None:
        return self._token

    async def refresh(self, stale_token: str | None) -> str:
        async with self._lock:
            if self._token is not None and self._token != stale_token:
                # Someone refreshed while we were waiting
                return self._token
            logger.info("Re-authenticating with backend")
            token = await self._authenticate()
            self._token = token
            self.refresh_count += 1
            return token

    async def handle_auth_expired(self, signal: AuthExpired) -> None:
        """Listener for the client's AuthExpired signal."""
        await self.refresh(signal.stale_token)


def client_credentials_authenticator(config: AeimsConfig, http_client: httpx.AsyncClient) -> Authenticator:
    """Exchange the configured client id/secret for a fresh backend token."""

    async def _authenticate() -> str:
        try:
            response = await http_client.post(
                config.url(config.auth_path),
                json={"clientId": config.client_id, "clientSecret": config.client_secret},
                headers={"User-Agent": config.user_agent},
            )
        except httpx.HTTPError as e:
            raise UpstreamAuthExpiredError(f"Re-authentication failed: {e!s}") from e

        if response.status_code >= 400:
            logger.error("Backend re-authentication rejected", extra={"status_code": response.status_code})
            raise UpstreamAuthExpiredError("Re-authentication rejected by backend")

        data = response.json() if response.content else {}
        token = data.get("token") or data.get("access_token")
        if not token:
            raise UpstreamAuthExpiredError("Re-authentication response carried no token")
        return str(token)

    return _authenticate


def utcnow() -> datetime:
    return datetime.now(timezone.utc)

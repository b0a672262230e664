"""
Tests for the backend credential manager.
"""

import asyncio
import json

import httpx
import pytest

from sip_gateway.aeims.config import AeimsConfig
from sip_gateway.aeims.credentials import CredentialManager, client_credentials_authenticator
from sip_gateway.shared.exceptions import UpstreamAuthExpiredError


class CountingAuthenticator:
    def __init__(self) -> None:
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        # Yield so concurrent waiters pile up on the lock
        await asyncio.sleep(0.01)
        return f"token-{self.calls}"


class TestCredentialManager:
    @pytest.mark.asyncio
    async def test_concurrent_refreshes_are_single_flight(self) -> None:
        authenticate = CountingAuthenticator()
        manager = CredentialManager(authenticate, initial_token="stale")

        results = await asyncio.gather(*(manager.refresh("stale") for _ in range(10)))

        assert authenticate.calls == 1
        assert set(results) == {"token-1"}
        assert manager.current == "token-1"

    @pytest.mark.asyncio
    async def test_later_stale_token_triggers_new_refresh(self) -> None:
        authenticate = CountingAuthenticator()
        manager = CredentialManager(authenticate, initial_token="stale")

        await manager.refresh("stale")
        await manager.refresh("token-1")

        assert authenticate.calls == 2
        assert manager.current == "token-2"

    @pytest.mark.asyncio
    async def test_refresh_without_initial_token(self) -> None:
        manager = CredentialManager(CountingAuthenticator())

        assert manager.current is None
        assert await manager.refresh(None) == "token-1"


class TestClientCredentialsAuthenticator:
    @pytest.fixture
    def config(self) -> AeimsConfig:
        return AeimsConfig(base_url="http://aeims.test", client_id="gw", client_secret="s3cret")

    @pytest.mark.asyncio
    async def test_exchanges_client_credentials(self, config: AeimsConfig) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"access_token": "abc"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            token = await client_credentials_authenticator(config, http_client)()

        assert token == "abc"
        assert str(seen[0].url) == "http://aeims.test/api/auth/token"
        assert json.loads(seen[0].content) == {"clientId": "gw", "clientSecret": "s3cret"}

    @pytest.mark.asyncio
    async def test_rejection_raises_auth_expired(self, config: AeimsConfig) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(403, json={"error": "nope"}))

        async with httpx.AsyncClient(transport=transport) as http_client:
            with pytest.raises(UpstreamAuthExpiredError):
                await client_credentials_authenticator(config, http_client)()

    def test_can_reauthenticate(self, config: AeimsConfig) -> None:
        assert config.can_reauthenticate is True
        assert AeimsConfig(client_id="gw").can_reauthenticate is False

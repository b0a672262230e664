"""
Pytest configuration and shared fixtures.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from sip_gateway.aeims.client import AeimsClient
from sip_gateway.aeims.config import AeimsConfig
from sip_gateway.aeims.retry import RetryPolicy
from sip_gateway.auth.jwt import TokenService
from sip_gateway.auth.permissions import Role
from sip_gateway.config import Settings
from sip_gateway.main import create_app
from sip_gateway.relay.billing import UsageRecord
from sip_gateway.shared.store import InMemoryStore

BACKEND_URL = "http://aeims.test"


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeBackend:
    """Scripted AEIMS backend for ``httpx.MockTransport``.

    Each route holds a list of outcomes: ``(status, json_body)`` tuples,
    exceptions to raise, or callables taking the request. Outcomes are
    consumed in order; the last one repeats.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list[Any]] = {}
        self.requests: list[httpx.Request] = []

    def on(self, method: str, path: str, *outcomes: Any) -> "FakeBackend":
        self.routes[(method.upper(), path)] = list(outcomes)
        return self

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method.upper() and r.url.path == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        outcomes = self.routes.get((request.method, request.url.path))
        if not outcomes:
            return httpx.Response(404, json={"error": "not found"})
        outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        if callable(outcome):
            return outcome(request)
        status_code, body = outcome
        return httpx.Response(status_code, json=body)


class FakeBilling:
    def __init__(self, fail: bool = False) -> None:
        self.records: list[UsageRecord] = []
        self.fail = fail

    async def record_usage(self, record: UsageRecord) -> None:
        self.records.append(record)
        if self.fail:
            raise RuntimeError("billing down")


async def no_sleep(_: float) -> None:
    return None


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        app_env="dev",
        debug=True,
        store_backend="memory",
        jwt_secret_key="test-secret-key-for-testing-only",
        bcrypt_rounds=4,
        webhook_secret="",
        subscriber_queue_size=10,
        cors_origins="http://localhost:3000",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def token_service(test_settings: Settings, store: InMemoryStore) -> TokenService:
    return TokenService(settings=test_settings, store=store)


@pytest.fixture
def aeims_config() -> AeimsConfig:
    return AeimsConfig(
        base_url=BACKEND_URL,
        api_token="service-token",
        retry_attempts=3,
        retry_base_delay_seconds=0.5,
    )


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend().on("GET", "/health", (200, {"status": "healthy", "uptime": 42}))


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def make_client(
    aeims_config: AeimsConfig,
    sleeps: list[float],
) -> Callable[..., AeimsClient]:
    """Build an AeimsClient over a MockTransport; records backoff delays in ``sleeps``."""

    async def _record_sleep(delay: float) -> None:
        sleeps.append(delay)

    def _make(handler: Callable[[httpx.Request], httpx.Response], **kwargs: Any) -> AeimsClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=BACKEND_URL)
        kwargs.setdefault(
            "read_policy",
            RetryPolicy.for_reads(max_attempts=3, base_delay=0.5, sleep=_record_sleep),
        )
        kwargs.setdefault(
            "command_policy",
            RetryPolicy.for_non_idempotent(max_retries=1, base_delay=0.5, sleep=_record_sleep),
        )
        return AeimsClient(aeims_config, http_client=http_client, **kwargs)

    return _make


@pytest.fixture
def aeims_client(make_client: Callable[..., AeimsClient], backend: FakeBackend) -> AeimsClient:
    return make_client(backend)


@pytest.fixture
def billing() -> FakeBilling:
    return FakeBilling()


@pytest.fixture
def app(test_settings: Settings, store: InMemoryStore, aeims_client: AeimsClient, billing: FakeBilling):
    return create_app(test_settings, store=store, aeims_client=aeims_client, billing=billing)


@pytest_asyncio.fixture
async def async_client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client against the app (no lifespan)."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture
def issue_token(app) -> Callable[..., str]:
    """Issue a token through the app's own token service."""

    def _issue(role: Role | str = Role.USER, subject_id: str | None = None, email: str | None = None) -> str:
        role = Role(role) if isinstance(role, str) else role
        return app.state.token_service.issue(subject_id or f"{role.value}-1", role, email=email).encoded

    return _issue


@pytest.fixture
def auth_headers(issue_token) -> Callable[..., dict[str, str]]:
    def _headers(role: Role | str = Role.USER, subject_id: str | None = None) -> dict[str, str]:
        return {"Authorization": f"Bearer {issue_token(role, subject_id)}"}

    return _headers

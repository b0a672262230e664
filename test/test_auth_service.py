"""
Tests for local login and SSO exchange.
"""

import httpx
import pytest

from sip_gateway.auth.jwt import TokenService
from sip_gateway.auth.permissions import Role
from sip_gateway.auth.service import AuthService, hash_password, verify_password
from sip_gateway.config import Settings
from sip_gateway.shared.exceptions import (
    AuthenticationError,
    InvalidCredentialsError,
    UpstreamRejectedError,
    UpstreamUnavailableError,
)


def _sso_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def service(token_service: TokenService, test_settings: Settings) -> AuthService:
    return AuthService(token_service, settings=test_settings)


def test_password_hash_round_trip() -> None:
    hashed = hash_password("s3cret", rounds=4)

    assert verify_password("s3cret", hashed)
    assert not verify_password("other", hashed)
    assert not verify_password("s3cret", b"not-a-bcrypt-hash")


class TestLocalLogin:
    def test_known_user(self, service: AuthService) -> None:
        issued = service.login("Admin@AfterDarkSys.com", "admin123")

        assert issued.identity.subject_id == "1"
        assert issued.identity.role is Role.ADMIN
        assert issued.identity.email == "admin@afterdarksys.com"

    @pytest.mark.parametrize(
        ("email", "password"),
        [("admin@afterdarksys.com", "nope"), ("ghost@afterdarksys.com", "admin123")],
    )
    def test_bad_credentials(self, service: AuthService, email: str, password: str) -> None:
        with pytest.raises(InvalidCredentialsError):
            service.login(email, password)


class TestSSOLogin:
    @pytest.mark.asyncio
    async def test_valid_token(self, token_service: TokenService, test_settings: Settings) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={"valid": True, "user": {"id": "sso-5", "email": "s@example.com", "role": "operator"}},
            )

        service = AuthService(token_service, settings=test_settings, http_client=_sso_client(handler))
        issued = await service.sso_login("idp-token")

        assert str(seen[0].url) == test_settings.sso_verify_url
        assert issued.identity.subject_id == "sso-5"
        assert issued.identity.role is Role.OPERATOR

    @pytest.mark.asyncio
    async def test_unknown_role_is_downgraded(self, token_service: TokenService, test_settings: Settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"valid": True, "user": {"id": "sso-6", "role": "superuser"}})

        service = AuthService(token_service, settings=test_settings, http_client=_sso_client(handler))

        assert (await service.sso_login("t")).identity.role is Role.USER

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, json={"valid": False}),
            httpx.Response(401, json={"error": "expired"}),
        ],
    )
    async def test_invalid_token(self, token_service: TokenService, test_settings: Settings, response) -> None:
        service = AuthService(token_service, settings=test_settings, http_client=_sso_client(lambda r: response))

        with pytest.raises(InvalidCredentialsError):
            await service.sso_login("t")

    @pytest.mark.asyncio
    async def test_user_without_id(self, token_service: TokenService, test_settings: Settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"valid": True, "user": {"email": "x@example.com"}})

        service = AuthService(token_service, settings=test_settings, http_client=_sso_client(handler))

        with pytest.raises(AuthenticationError) as exc_info:
            await service.sso_login("t")
        assert exc_info.value.code == "SSO_ERROR"

    @pytest.mark.asyncio
    async def test_provider_unreachable(self, token_service: TokenService, test_settings: Settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused")

        service = AuthService(token_service, settings=test_settings, http_client=_sso_client(handler))

        with pytest.raises(UpstreamUnavailableError):
            await service.sso_login("t")

    @pytest.mark.asyncio
    async def test_provider_error(self, token_service: TokenService, test_settings: Settings) -> None:
        service = AuthService(
            token_service,
            settings=test_settings,
            http_client=_sso_client(lambda r: httpx.Response(500, text="oops")),
        )

        with pytest.raises(UpstreamRejectedError):
            await service.sso_login("t")

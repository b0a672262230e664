"""
Authentication service: local directory login and SSO exchange.

Both paths end in ``TokenService.issue``; this module only decides who the
caller is and which role they get.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import bcrypt
import httpx

from sip_gateway.auth.jwt import IdentityToken, TokenService
from sip_gateway.auth.permissions import Role
from sip_gateway.config import Settings, get_settings
from sip_gateway.shared.exceptions import (
    AuthenticationError,
    InvalidCredentialsError,
    InvalidRoleError,
    UpstreamRejectedError,
    UpstreamUnavailableError,
)
from sip_gateway.shared.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class DirectoryUser:
    subject_id: str
    email: str
    role: Role
    password_hash: bytes


def hash_password(password: str, rounds: int = 12) -> bytes:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))


def verify_password(password: str, password_hash: bytes) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash)
    except ValueError:
        return False


def build_local_directory(settings: Settings) -> dict[str, DirectoryUser]:
    """Demo accounts; passwords come from settings and are hashed once."""
    accounts = (
        ("1", "admin@afterdarksys.com", Role.ADMIN, settings.admin_password),
        ("2", "operator@afterdarksys.com", Role.OPERATOR, settings.operator_password),
        ("3", "user@afterdarksys.com", Role.USER, settings.user_password),
    )
    return {
        email: DirectoryUser(
            subject_id=subject_id,
            email=email,
            role=role,
            password_hash=hash_password(password, settings.bcrypt_rounds),
        )
        for subject_id, email, role, password in accounts
    }


class AuthService:
    def __init__(
        self,
        tokens: TokenService,
        settings: Settings | None = None,
        directory: Mapping[str, DirectoryUser] | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._tokens = tokens
        self._settings = settings or get_settings()
        self._directory = directory if directory is not None else build_local_directory(self._settings)
        self._http_client = http_client
        self._dummy_hash = hash_password("dummy", self._settings.bcrypt_rounds)

    @property
    def tokens(self) -> TokenService:
        return self._tokens

    def login(self, email: str, password: str) -> IdentityToken:
        """Authenticate against the local directory.

        Raises:
            InvalidCredentialsError: Unknown email or wrong password.
        """
        user = self._directory.get(email.lower())
        if user is None:
            # Same bcrypt cost whether or not the account exists
            verify_password(password, self._dummy_hash)
            logger.info("Login failed: unknown account", extra={"email": email})
            raise InvalidCredentialsError()
        if not verify_password(password, user.password_hash):
            logger.info("Login failed: wrong password", extra={"email": email})
            raise InvalidCredentialsError()

        logger.info("Login succeeded", extra={"subject_id": user.subject_id, "role": user.role.value})
        return self._tokens.issue(user.subject_id, user.role, email=user.email)

    async def sso_login(self, sso_token: str) -> IdentityToken:
        """Exchange an identity-provider token for a gateway token.

        Raises:
            InvalidCredentialsError: Provider says the token is not valid.
            AuthenticationError: Provider vouched for a user without an id.
            UpstreamUnavailableError: Provider unreachable.
            UpstreamRejectedError: Provider answered with an error or garbage.
        """
        user = await self._verify_with_provider(sso_token)
        try:
            role = Role.from_string(str(user.get("role") or Role.USER.value))
        except InvalidRoleError:
            logger.warning("SSO user has unknown role, downgrading", extra={"role": user.get("role")})
            role = Role.USER
        subject_id = str(user.get("id") or "").strip()
        if not subject_id:
            raise AuthenticationError("SSO provider returned no user id", "SSO_ERROR")
        return self._tokens.issue(subject_id, role, email=user.get("email"))

    async def _verify_with_provider(self, sso_token: str) -> dict[str, Any]:
        client = self._http_client or httpx.AsyncClient(timeout=httpx.Timeout(10.0))
        try:
            response = await client.post(self._settings.sso_verify_url, json={"token": sso_token})
        except httpx.HTTPError as e:
            logger.error("SSO provider unreachable", extra={"error": str(e)})
            raise UpstreamUnavailableError("SSO provider unreachable", operation="sso_verify", attempts=1, last_error=e) from e
        finally:
            if self._http_client is None:
                await client.aclose()

        if response.status_code in (401, 403):
            raise InvalidCredentialsError("Invalid SSO token")
        if response.status_code >= 400:
            logger.error("SSO provider error", extra={"status_code": response.status_code})
            raise UpstreamRejectedError("SSO verification failed", upstream_status=response.status_code, operation="sso_verify")

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamRejectedError(
                "SSO provider returned invalid JSON", upstream_status=response.status_code, operation="sso_verify"
            ) from e

        if not data.get("valid") or not isinstance(data.get("user"), dict):
            raise InvalidCredentialsError("Invalid SSO token")
        return data["user"]

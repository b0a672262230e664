"""JWT identity tokens: issue, validate, refresh and revoke."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

import jwt

from sip_gateway.auth.permissions import PermissionModel, Role, get_permission_model
from sip_gateway.config import Settings, get_settings
from sip_gateway.shared.exceptions import (
    InvalidSignatureError,
    MalformedTokenError,
    TokenExpiredError,
    TokenRevokedError,
)
from sip_gateway.shared.logging import get_logger
from sip_gateway.shared.store import InMemoryStore, KeyValueStore

logger = get_logger(__name__)

REVOKED_NAMESPACE = "revoked_tokens"
_REQUIRED_CLAIMS = ("sub", "role", "iat", "exp", "jti")


@dataclass(frozen=True)
class Identity:
    """Validated claims of an identity token."""

    subject_id: str
    role: Role
    capabilities: frozenset[str]
    issued_at: datetime
    expires_at: datetime
    token_id: str
    email: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "subjectId": self.subject_id,
            "role": self.role.value,
            "capabilities": sorted(self.capabilities),
            "email": self.email,
            "issuedAt": self.issued_at.isoformat(),
            "expiresAt": self.expires_at.isoformat(),
        }


@dataclass(frozen=True)
class IdentityToken:
    """An issued token: its claims plus the signed string."""

    identity: Identity
    encoded: str

    @property
    def expires_in(self) -> int:
        return int((self.identity.expires_at - self.identity.issued_at).total_seconds())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenService:
    """Issues and validates signed, time-limited identity tokens.

    Validity is stateless; only revocation consults the store.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        store: KeyValueStore | None = None,
        permissions: PermissionModel | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._settings = settings or get_settings()
        self._store = store if store is not None else InMemoryStore()
        self._permissions = permissions or get_permission_model()
        self._clock = clock

    @property
    def lifetime(self) -> timedelta:
        return timedelta(hours=self._settings.jwt_expire_hours)

    def issue(self, subject_id: str, role: Role | str, email: str | None = None) -> IdentityToken:
        """Issue a token valid for the configured lifetime (24h by default).

        Raises:
            InvalidRoleError: If ``role`` is not a known role.
        """
        role = Role.from_string(role) if isinstance(role, str) else role
        # JWT timestamps are whole seconds
        now = self._clock().replace(microsecond=0)
        identity = Identity(
            subject_id=str(subject_id),
            role=role,
            capabilities=self._permissions.capabilities_for(role),
            issued_at=now,
            expires_at=now + self.lifetime,
            token_id=uuid4().hex,
            email=email,
        )
        return IdentityToken(identity=identity, encoded=self._encode(identity))

    def _encode(self, identity: Identity) -> str:
        payload: dict[str, Any] = {
            "sub": identity.subject_id,
            "role": identity.role.value,
            "capabilities": sorted(identity.capabilities),
            "iat": int(identity.issued_at.timestamp()),
            "exp": int(identity.expires_at.timestamp()),
            "jti": identity.token_id,
        }
        if identity.email:
            payload["email"] = identity.email
        return jwt.encode(
            payload,
            self._settings.jwt_secret_key,
            algorithm=self._settings.jwt_algorithm,
        )

    def decode(self, token: str) -> Identity:
        """Verify signature, shape and expiry without consulting revocations."""
        if not token or not isinstance(token, str):
            raise MalformedTokenError("Empty token")
        try:
            payload = jwt.decode(
                token,
                self._settings.jwt_secret_key,
                algorithms=[self._settings.jwt_algorithm],
                # Expiry is checked below against the injected clock.
                options={"verify_exp": False, "verify_iat": False},
            )
        except jwt.InvalidSignatureError as e:
            logger.warning("Token signature rejected")
            raise InvalidSignatureError() from e
        except jwt.InvalidTokenError as e:
            logger.warning("Malformed token", extra={"error": str(e)})
            raise MalformedTokenError(details={"error": str(e)}) from e

        missing = [claim for claim in _REQUIRED_CLAIMS if claim not in payload]
        if missing:
            raise MalformedTokenError("Token missing required claims", {"missing": missing})

        try:
            role = Role(payload["role"])
            issued_at = datetime.fromtimestamp(int(payload["iat"]), tz=timezone.utc)
            expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
        except (ValueError, TypeError) as e:
            raise MalformedTokenError("Token claims have invalid values", {"error": str(e)}) from e

        if expires_at <= self._clock():
            raise TokenExpiredError(details={"expired_at": expires_at.isoformat()})

        return Identity(
            subject_id=str(payload["sub"]),
            role=role,
            capabilities=frozenset(payload.get("capabilities") or ()),
            issued_at=issued_at,
            expires_at=expires_at,
            token_id=str(payload["jti"]),
            email=payload.get("email"),
        )

    async def validate(self, token: str) -> Identity:
        """Validate a token string.

        Raises:
            TokenExpiredError: Token is past its expiry.
            InvalidSignatureError: Signature does not verify.
            MalformedTokenError: Token cannot be decoded or lacks claims.
            TokenRevokedError: Token was revoked.
        """
        identity = self.decode(token)
        if await self._store.get(REVOKED_NAMESPACE, identity.token_id) is not None:
            raise TokenRevokedError()
        return identity

    async def refresh(self, token: str) -> IdentityToken:
        """Issue a new token with identical claims and a fresh window.

        There is no grace period: an expired token cannot be refreshed.
        """
        identity = await self.validate(token)
        refreshed = self.issue(identity.subject_id, identity.role, email=identity.email)
        logger.info("Token refreshed", extra={"subject_id": identity.subject_id})
        return refreshed

    async def revoke(self, token: str) -> Identity:
        """Revoke a token until its natural expiry."""
        identity = await self.validate(token)
        remaining = (identity.expires_at - self._clock()).total_seconds()
        await self._store.put(
            REVOKED_NAMESPACE,
            identity.token_id,
            {"subject_id": identity.subject_id, "revoked_at": self._clock().isoformat()},
            ttl_seconds=remaining,
        )
        logger.info("Token revoked", extra={"subject_id": identity.subject_id})
        return identity

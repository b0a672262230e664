"""
Bearer-token authentication and capability checks for FastAPI routes.

Exposes:
- get_bearer_token: raw token from the Authorization header
- get_current_identity: validated ``Identity`` for the caller
- CapabilityChecker: dependency class enforcing a minimum capability
- CurrentIdentityDep and the per-tier aliases used by routers
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from sip_gateway.auth.jwt import Identity
from sip_gateway.auth.permissions import Capability, require_capability
from sip_gateway.dependencies import get_token_service
from sip_gateway.shared.exceptions import AuthenticationError, MissingTokenError, PermissionDeniedError
from sip_gateway.shared.logging import get_logger

logger = get_logger(__name__)
security = HTTPBearer(auto_error=False)


def get_bearer_token(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)] = None,
) -> str:
    if credentials is None or not credentials.credentials:
        logger.warning(
            "Missing authentication credentials",
            extra={
                "endpoint": str(request.url.path),
                "method": request.method,
                "client_ip": request.client.host if request.client else "unknown",
            },
        )
        raise MissingTokenError()
    return credentials.credentials


async def get_current_identity(
    request: Request,
    token: Annotated[str, Depends(get_bearer_token)],
) -> Identity:
    """Validate the bearer token and return the caller's identity."""
    tokens = get_token_service(request)
    try:
        return await tokens.validate(token)
    except AuthenticationError as e:
        logger.info(
            "Token rejected",
            extra={"endpoint": str(request.url.path), "method": request.method, "code": e.code},
        )
        raise


CurrentIdentityDep = Annotated[Identity, Depends(get_current_identity)]


class CapabilityChecker:
    """Dependency class for capability-based access control checks."""

    def __init__(self, capability: Capability) -> None:
        self.capability = capability

    async def __call__(self, request: Request, identity: CurrentIdentityDep) -> Identity:
        try:
            require_capability(identity.role, self.capability, request.app.state.permissions)
        except PermissionDeniedError:
            logger.warning(
                "Access denied",
                extra={
                    "subject_id": identity.subject_id,
                    "role": identity.role.value,
                    "required": self.capability.value,
                    "endpoint": str(request.url.path),
                    "method": request.method,
                },
            )
            raise
        return identity


require_basic = CapabilityChecker(Capability.BASIC)
require_operator = CapabilityChecker(Capability.OPERATOR)
require_admin = CapabilityChecker(Capability.ADMIN)

BasicIdentityDep = Annotated[Identity, Depends(require_basic)]
OperatorIdentityDep = Annotated[Identity, Depends(require_operator)]
AdminIdentityDep = Annotated[Identity, Depends(require_admin)]

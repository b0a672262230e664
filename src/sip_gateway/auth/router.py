"""
Authentication endpoints: login, SSO exchange, refresh, verify, logout.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from sip_gateway.auth.jwt import Identity, IdentityToken
from sip_gateway.auth.middleware import CurrentIdentityDep, get_bearer_token
from sip_gateway.auth.schemas import (
    LoginRequest,
    LogoutResponse,
    SSOLoginRequest,
    TokenResponse,
    UserInfo,
    VerifyResponse,
)
from sip_gateway.dependencies import AuthServiceDep, TokenServiceDep
from sip_gateway.shared.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

BearerTokenDep = Annotated[str, Depends(get_bearer_token)]


def _user_info(identity: Identity) -> UserInfo:
    return UserInfo(
        id=identity.subject_id,
        email=identity.email,
        role=identity.role.value,
        permissions=sorted(identity.capabilities),
    )


def _token_response(issued: IdentityToken, include_user: bool = True) -> TokenResponse:
    return TokenResponse(
        token=issued.encoded,
        expires_in=issued.expires_in,
        expires_at=issued.identity.expires_at,
        user=_user_info(issued.identity) if include_user else None,
    )


@router.post("/login", response_model=TokenResponse, response_model_by_alias=True, response_model_exclude_none=True)
async def login(body: LoginRequest, auth: AuthServiceDep) -> TokenResponse:
    return _token_response(auth.login(body.email, body.password))


@router.post("/sso-login", response_model=TokenResponse, response_model_by_alias=True, response_model_exclude_none=True)
async def sso_login(body: SSOLoginRequest, auth: AuthServiceDep) -> TokenResponse:
    return _token_response(await auth.sso_login(body.token))


@router.post("/refresh", response_model=TokenResponse, response_model_by_alias=True, response_model_exclude_none=True)
async def refresh(token: BearerTokenDep, tokens: TokenServiceDep) -> TokenResponse:
    return _token_response(await tokens.refresh(token), include_user=False)


@router.get("/verify", response_model=VerifyResponse)
async def verify(identity: CurrentIdentityDep) -> VerifyResponse:
    return VerifyResponse(user=_user_info(identity))


@router.post("/logout", response_model=LogoutResponse)
async def logout(token: BearerTokenDep, tokens: TokenServiceDep) -> LogoutResponse:
    identity = await tokens.revoke(token)
    logger.info("Logged out", extra={"subject_id": identity.subject_id})
    return LogoutResponse()

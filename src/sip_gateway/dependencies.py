"""
FastAPI dependencies resolving the services built in the application lifespan.

Everything lives on ``app.state``; tests swap components by assigning
different objects there before issuing requests.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from sip_gateway.aeims.client import AeimsClient
from sip_gateway.aeims.commands import CommandFacade
from sip_gateway.auth.jwt import TokenService
from sip_gateway.auth.service import AuthService
from sip_gateway.config import Settings
from sip_gateway.dashboard.service import DashboardService
from sip_gateway.relay.relay import EventRelay
from sip_gateway.shared.store import KeyValueStore


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> KeyValueStore:
    return request.app.state.store


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_aeims_client(request: Request) -> AeimsClient:
    return request.app.state.aeims_client


def get_commands(request: Request) -> CommandFacade:
    return request.app.state.commands


def get_relay(request: Request) -> EventRelay:
    return request.app.state.relay


def get_dashboard_service(request: Request) -> DashboardService:
    return request.app.state.dashboard


SettingsDep = Annotated[Settings, Depends(get_app_settings)]
StoreDep = Annotated[KeyValueStore, Depends(get_store)]
TokenServiceDep = Annotated[TokenService, Depends(get_token_service)]
AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]
AeimsClientDep = Annotated[AeimsClient, Depends(get_aeims_client)]
CommandsDep = Annotated[CommandFacade, Depends(get_commands)]
RelayDep = Annotated[EventRelay, Depends(get_relay)]
DashboardDep = Annotated[DashboardService, Depends(get_dashboard_service)]

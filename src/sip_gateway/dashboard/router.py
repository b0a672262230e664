from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from sip_gateway import __version__
from sip_gateway.auth.middleware import AdminIdentityDep, BasicIdentityDep
from sip_gateway.dependencies import AeimsClientDep, DashboardDep, SettingsDep

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("/overview")
async def overview(identity: BasicIdentityDep, dashboard: DashboardDep) -> dict[str, Any]:
    return await dashboard.overview()


@router.get("/stats/realtime")
async def realtime_stats(identity: BasicIdentityDep, dashboard: DashboardDep) -> dict[str, Any]:
    return await dashboard.realtime_stats()


@router.get("/analytics/{time_range}")
async def analytics(time_range: str, identity: BasicIdentityDep, dashboard: DashboardDep) -> dict[str, Any]:
    return await dashboard.analytics(time_range)


@router.get("/user-data")
async def user_data(identity: BasicIdentityDep, dashboard: DashboardDep) -> dict[str, Any]:
    return await dashboard.user_data(identity)


@router.get("/config")
async def config_status(
    identity: AdminIdentityDep,
    settings: SettingsDep,
    client: AeimsClientDep,
) -> dict[str, Any]:
    return {
        "sipGateway": {"version": __version__, "environment": settings.app_env},
        "aeims": {
            "baseUrl": client.config.base_url,
            "connected": await client.is_connected(),
        },
        "sso": {"verifyUrl": settings.sso_verify_url},
        "features": {
            "realTimeEvents": True,
            "webhooks": True,
            "webhookSignatures": settings.webhook_verification_enabled,
            "billing": True,
            "analytics": True,
        },
        "storeBackend": settings.store_backend,
    }

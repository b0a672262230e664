"""
Dashboard composites.

Each composite fans out to several backend reads concurrently. A read
that fails with an upstream error, or answers with something other than a
JSON object, is replaced by its default and named in ``degraded``; the
composite itself still succeeds.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

from sip_gateway.aeims.client import AeimsClient
from sip_gateway.auth.jwt import Identity
from sip_gateway.shared.exceptions import NotFoundError, UpstreamError
from sip_gateway.shared.logging import get_logger

logger = get_logger(__name__)

# Failures a composite absorbs; anything else propagates
DEGRADABLE_ERRORS = (UpstreamError, NotFoundError)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


class DashboardService:
    def __init__(self, client: AeimsClient) -> None:
        self._client = client

    async def _compose(
        self,
        parts: dict[str, tuple[Callable[[], Awaitable[Any]], Any]],
    ) -> tuple[dict[str, Any], list[str]]:
        """Run every part concurrently; returns (results, degraded part names)."""
        names = list(parts)
        outcomes = await asyncio.gather(*(parts[n][0]() for n in names), return_exceptions=True)

        results: dict[str, Any] = {}
        degraded: list[str] = []
        for name, outcome in zip(names, outcomes):
            if isinstance(outcome, DEGRADABLE_ERRORS):
                logger.warning(
                    "Dashboard part degraded to default",
                    extra={"part": name, "code": outcome.code, "error": outcome.message},
                )
                results[name] = parts[name][1]
                degraded.append(name)
            elif isinstance(outcome, BaseException):
                raise outcome
            elif not isinstance(outcome, dict):
                logger.warning(
                    "Dashboard part returned unexpected shape",
                    extra={"part": name, "result_type": type(outcome).__name__},
                )
                results[name] = parts[name][1]
                degraded.append(name)
            else:
                results[name] = outcome
        return results, degraded

    async def overview(self) -> dict[str, Any]:
        results, degraded = await self._compose(
            {
                "active_calls": (self._client.get_active_calls, {"calls": [], "count": 0}),
                "health": (self._client.health_check, {"status": "unknown"}),
                "call_files": (
                    self._client.get_call_file_stats,
                    {"total": 0, "pending": 0, "completed": 0, "failed": 0},
                ),
                "analytics": (
                    lambda: self._client.get_call_analytics("24h"),
                    {"totalCalls": 0, "totalDuration": 0, "averageDuration": 0},
                ),
            }
        )
        active = results["active_calls"]
        health = results["health"]
        call_files = results["call_files"]
        analytics = results["analytics"]

        return {
            "activeCalls": {
                "count": active.get("count") or 0,
                "calls": _as_list(active.get("calls")),
            },
            "systemHealth": {
                "status": health.get("status") or "unknown",
                "uptime": health.get("uptime") or 0,
                "lastCheck": _now_iso(),
            },
            "callFiles": {key: call_files.get(key) or 0 for key in ("total", "pending", "completed", "failed")},
            "analytics": {
                "last24h": {
                    key: analytics.get(key) or 0 for key in ("totalCalls", "totalDuration", "averageDuration")
                }
            },
            "degraded": degraded,
            "timestamp": _now_iso(),
        }

    async def realtime_stats(self) -> dict[str, Any]:
        results, degraded = await self._compose(
            {
                "channels": (self._client.get_freeswitch_channels, {"channels": []}),
                "telemetry": (self._client.get_system_telemetry, {"cpu": 0, "memory": 0, "disk": 0}),
            }
        )
        channels = _as_list(results["channels"].get("channels"))
        telemetry = results["telemetry"]
        return {
            "channels": {
                "active": len(channels),
                "inbound": sum(1 for c in channels if isinstance(c, dict) and c.get("direction") == "inbound"),
                "outbound": sum(1 for c in channels if isinstance(c, dict) and c.get("direction") == "outbound"),
            },
            "system": {key: telemetry.get(key) or 0 for key in ("cpu", "memory", "disk")},
            "degraded": degraded,
            "timestamp": _now_iso(),
        }

    async def analytics(self, time_range: str) -> dict[str, Any]:
        return {
            "timeRange": time_range,
            "analytics": await self._client.get_call_analytics(time_range),
            "timestamp": _now_iso(),
        }

    async def user_data(self, identity: Identity) -> dict[str, Any]:
        subject_id = identity.subject_id
        results, degraded = await self._compose(
            {
                "details": (
                    lambda: self._client.get_user_details(subject_id),
                    {"id": subject_id, "email": identity.email},
                ),
                "billing": (lambda: self._client.get_billing_info(subject_id), {"balance": 0, "usage": []}),
            }
        )
        return {
            "user": {
                "id": subject_id,
                "email": identity.email,
                "role": identity.role.value,
                "permissions": sorted(identity.capabilities),
                "details": results["details"],
            },
            "billing": results["billing"],
            "degraded": degraded,
            "timestamp": _now_iso(),
        }

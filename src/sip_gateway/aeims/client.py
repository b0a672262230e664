"""
AEIMS telephony backend client.

Translates typed domain operations into HTTP calls against the backend.
Every call goes through a ``RetryPolicy``; non-idempotent operations use
the restricted policy (see ``sip_gateway.aeims.retry``). A 401 from the
backend is never retried: the client emits an ``AuthExpired`` signal to its
listeners and resumes the request once if a listener installed a new token.

In-flight commands cannot be cancelled; the backend owns call state, so a
caller undoes an action by issuing the compensating command (e.g. hangup).
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import quote

import httpx

from sip_gateway.aeims.config import AeimsConfig
from sip_gateway.aeims.credentials import AuthExpired, utcnow
from sip_gateway.aeims.retry import RETRYABLE_STATUS_CODES, RetryableStatusError, RetryPolicy
from sip_gateway.shared.exceptions import (
    NotFoundError,
    UpstreamAuthExpiredError,
    UpstreamRejectedError,
    ValidationError,
)
from sip_gateway.shared.logging import get_logger

logger = get_logger(__name__)

AuthExpiredListener = Callable[[AuthExpired], Awaitable[None] | None]

ANALYTICS_RANGES = ("1h", "6h", "24h", "7d", "30d")


class _CredentialRejected(Exception):
    """Internal: backend answered 401."""


def _require_id(name: str, value: Any) -> str:
    text = "" if value is None else str(value).strip()
    if not text:
        raise ValidationError(f"{name} must be a non-empty identifier", {"field": name})
    return quote(text, safe="")


class AeimsClient:
    """Typed client for the AEIMS backend."""

    def __init__(
        self,
        config: AeimsConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
        read_policy: RetryPolicy | None = None,
        command_policy: RetryPolicy | None = None,
        token_source: Callable[[], str | None] | None = None,
    ) -> None:
        self._config = config or AeimsConfig()
        self._http_client = http_client
        self._owns_client = http_client is None
        self._read_policy = read_policy or RetryPolicy.for_reads(
            max_attempts=self._config.retry_attempts,
            base_delay=self._config.retry_base_delay_seconds,
        )
        self._command_policy = command_policy or RetryPolicy.for_non_idempotent(
            max_retries=self._config.non_idempotent_max_retries,
            base_delay=self._config.retry_base_delay_seconds,
        )
        self._token_source = token_source or (lambda: self._config.api_token or None)
        self._auth_expired_listeners: list[AuthExpiredListener] = []

    @property
    def config(self) -> AeimsConfig:
        return self._config

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                base_url=self._config.base_url,
                timeout=httpx.Timeout(self._config.timeout_seconds),
                headers={
                    "Content-Type": "application/json",
                    "User-Agent": self._config.user_agent,
                },
            )
            self._owns_client = True
        return self._http_client

    async def close(self) -> None:
        if self._owns_client and self._http_client is not None and not self._http_client.is_closed:
            await self._http_client.aclose()
            self._http_client = None

    # ------------------------------------------------------------------
    # Auth-expired signal
    # ------------------------------------------------------------------

    def on_auth_expired(self, listener: AuthExpiredListener) -> None:
        self._auth_expired_listeners.append(listener)

    async def _emit_auth_expired(self, signal: AuthExpired) -> None:
        for listener in list(self._auth_expired_listeners):
            try:
                result = listener(signal)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "AuthExpired listener failed",
                    extra={"operation": signal.operation},
                )

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _send(
        self,
        operation: str,
        method: str,
        path: str,
        token: str | None,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        headers = {"User-Agent": self._config.user_agent}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        response = await self._get_client().request(
            method,
            path,
            json=json,
            params=params,
            headers=headers,
            timeout=self._config.timeout_seconds,
        )

        if response.status_code == 401:
            raise _CredentialRejected()

        body = _safe_json(response)

        if response.status_code in RETRYABLE_STATUS_CODES:
            raise RetryableStatusError(response.status_code, body)

        if response.status_code == 404:
            raise NotFoundError(
                _error_message(body, f"{operation}: not found"),
                {"operation": operation},
            )

        if response.status_code >= 400:
            logger.error(
                "Backend rejected request",
                extra={"operation": operation, "status_code": response.status_code, "error": body},
            )
            raise UpstreamRejectedError(
                _error_message(body, f"{operation} rejected by backend"),
                upstream_status=response.status_code,
                operation=operation,
                upstream_body=body,
            )

        return body if body is not None else {}

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        idempotent: bool = True,
    ) -> Any:
        policy = self._read_policy if idempotent else self._command_policy
        resumed = False

        while True:
            token = self._token_source()
            try:
                return await policy.run(
                    lambda: self._send(operation, method, path, token, json=json, params=params),
                    operation=operation,
                )
            except _CredentialRejected:
                logger.warning("Backend rejected credential", extra={"operation": operation})
                await self._emit_auth_expired(AuthExpired(operation=operation, stale_token=token, at=utcnow()))
                if not resumed and self._token_source() != token:
                    resumed = True
                    continue
                raise UpstreamAuthExpiredError(operation=operation) from None

    # ------------------------------------------------------------------
    # Health / FreeSWITCH
    # ------------------------------------------------------------------

    async def health_check(self) -> dict[str, Any]:
        return await self._request("health_check", "GET", "/health")

    async def is_connected(self) -> bool:
        try:
            await self.health_check()
        except Exception:
            return False
        return True

    async def get_freeswitch_status(self) -> dict[str, Any]:
        return await self._request("get_freeswitch_status", "GET", "/api/freeswitch/status")

    async def get_freeswitch_channels(self) -> dict[str, Any]:
        return await self._request("get_freeswitch_channels", "GET", "/api/freeswitch/channels")

    async def execute_freeswitch_command(self, command: str, args: list[str] | None = None) -> dict[str, Any]:
        if not command or not command.strip():
            raise ValidationError("command is required", {"field": "command"})
        return await self._request(
            "execute_freeswitch_command",
            "POST",
            "/api/freeswitch/command",
            json={"command": command, "args": args or []},
            idempotent=False,
        )

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    async def initiate_call(self, call_data: dict[str, Any]) -> dict[str, Any]:
        if not call_data.get("from") or not call_data.get("to"):
            raise ValidationError("Missing required fields: from, to", {"fields": ["from", "to"]})
        return await self._request(
            "initiate_call", "POST", "/api/calls/initiate", json=call_data, idempotent=False
        )

    async def hangup_call(self, call_id: str) -> dict[str, Any]:
        return await self._request("hangup_call", "POST", f"/api/calls/{_require_id('call_id', call_id)}/hangup")

    async def transfer_call(self, call_id: str, destination: str) -> dict[str, Any]:
        if not destination:
            raise ValidationError("Destination is required", {"field": "destination"})
        return await self._request(
            "transfer_call",
            "POST",
            f"/api/calls/{_require_id('call_id', call_id)}/transfer",
            json={"destination": destination},
            idempotent=False,
        )

    async def mute_call(self, call_id: str, participant: str | None = None) -> dict[str, Any]:
        return await self._request(
            "mute_call",
            "POST",
            f"/api/calls/{_require_id('call_id', call_id)}/mute",
            json={"participant": participant},
        )

    async def unmute_call(self, call_id: str, participant: str | None = None) -> dict[str, Any]:
        return await self._request(
            "unmute_call",
            "POST",
            f"/api/calls/{_require_id('call_id', call_id)}/unmute",
            json={"participant": participant},
        )

    async def get_call_details(self, call_id: str) -> dict[str, Any]:
        return await self._request("get_call_details", "GET", f"/api/calls/{_require_id('call_id', call_id)}")

    async def get_active_calls(self) -> dict[str, Any]:
        return await self._request("get_active_calls", "GET", "/api/calls/active")

    # ------------------------------------------------------------------
    # Call files
    # ------------------------------------------------------------------

    async def create_call_file(self, call_file_data: dict[str, Any]) -> dict[str, Any]:
        missing = [f for f in ("channel", "context", "extension") if not call_file_data.get(f)]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", {"fields": missing})
        return await self._request(
            "create_call_file", "POST", "/api/callfiles/create", json=call_file_data, idempotent=False
        )

    async def get_call_file_status(self, call_file_id: str) -> dict[str, Any]:
        return await self._request(
            "get_call_file_status",
            "GET",
            f"/api/callfiles/{_require_id('call_file_id', call_file_id)}/status",
        )

    async def get_call_file_stats(self) -> dict[str, Any]:
        return await self._request("get_call_file_stats", "GET", "/api/callfiles/stats")

    # ------------------------------------------------------------------
    # Conferences
    # ------------------------------------------------------------------

    async def create_conference(self, conference_data: dict[str, Any]) -> dict[str, Any]:
        if not conference_data.get("name"):
            raise ValidationError("Conference name is required", {"field": "name"})
        return await self._request(
            "create_conference", "POST", "/api/conference/create", json=conference_data, idempotent=False
        )

    async def join_conference(self, conference_id: str, participant_data: dict[str, Any]) -> dict[str, Any]:
        return await self._request(
            "join_conference",
            "POST",
            f"/api/conference/{_require_id('conference_id', conference_id)}/join",
            json=participant_data,
            idempotent=False,
        )

    async def leave_conference(self, conference_id: str, participant_id: str) -> dict[str, Any]:
        _require_id("participant_id", participant_id)
        return await self._request(
            "leave_conference",
            "POST",
            f"/api/conference/{_require_id('conference_id', conference_id)}/leave",
            json={"participantId": participant_id},
        )

    async def get_conference_details(self, conference_id: str) -> dict[str, Any]:
        return await self._request(
            "get_conference_details",
            "GET",
            f"/api/conference/{_require_id('conference_id', conference_id)}",
        )

    # ------------------------------------------------------------------
    # Users / billing
    # ------------------------------------------------------------------

    async def get_user_details(self, user_id: str) -> dict[str, Any]:
        return await self._request("get_user_details", "GET", f"/api/users/{_require_id('user_id', user_id)}")

    async def get_billing_info(self, user_id: str) -> dict[str, Any]:
        return await self._request(
            "get_billing_info", "GET", f"/api/billing/user/{_require_id('user_id', user_id)}"
        )

    async def record_usage(self, usage_data: dict[str, Any]) -> dict[str, Any]:
        # Replaying a usage record would bill twice
        return await self._request(
            "record_usage", "POST", "/api/billing/usage", json=usage_data, idempotent=False
        )

    # ------------------------------------------------------------------
    # Analytics / monitoring
    # ------------------------------------------------------------------

    async def get_system_telemetry(self) -> dict[str, Any]:
        return await self._request("get_system_telemetry", "GET", "/api/telemetry")

    async def get_call_analytics(self, time_range: str = "24h") -> dict[str, Any]:
        if time_range not in ANALYTICS_RANGES:
            raise ValidationError(
                "Invalid time range",
                {"time_range": time_range, "valid_ranges": list(ANALYTICS_RANGES)},
            )
        return await self._request(
            "get_call_analytics", "GET", "/api/analytics/calls", params={"range": time_range}
        )


def _safe_json(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return {"raw": response.text}


def _error_message(body: Any, default: str) -> str:
    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return default

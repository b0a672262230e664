"""
Real-time WebSocket channel.

Handshake: the client presents its identity token (``?token=`` or a Bearer
header). Invalid tokens are refused with close code 4001 before accept.

After accept, the client drives subscriptions with JSON messages:

    {"action": "subscribe", "subjectId": "u1"}
    {"action": "unsubscribe", "subjectId": "u1"}
    {"action": "ping"}

Subscribing to a subject other than one's own needs ``sip:operator``.
All outbound traffic, including acks, goes through the connection's
bounded queue and a single sender task.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PydanticValidationError

from sip_gateway.auth.jwt import Identity
from sip_gateway.auth.permissions import Capability
from sip_gateway.relay.connections import Connection
from sip_gateway.relay.schemas import ClientMessage
from sip_gateway.shared.exceptions import AuthenticationError
from sip_gateway.shared.logging import get_logger

logger = get_logger(__name__)

SESSION_NAMESPACE = "ws_sessions"
CONTROL_CHANNEL = "control"

CLOSE_UNAUTHORIZED = 4001
CLOSE_OVERFLOW = 1013

router = APIRouter(tags=["realtime"])


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _control(name: str, data: dict[str, Any]) -> dict[str, Any]:
    return {"channel": CONTROL_CHANNEL, "type": name, "data": data, "timestamp": _now_iso()}


def _token_from_handshake(websocket: WebSocket) -> str | None:
    token = websocket.query_params.get("token")
    if token:
        return token
    header = websocket.headers.get("authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value:
        return value.strip()
    return None


async def _authenticate(websocket: WebSocket) -> Identity | None:
    token = _token_from_handshake(websocket)
    if not token:
        logger.warning("WebSocket rejected: missing token")
        return None
    try:
        return await websocket.app.state.token_service.validate(token)
    except AuthenticationError as e:
        logger.warning("WebSocket rejected: invalid token", extra={"code": e.code})
        return None


def handle_client_message(websocket: WebSocket, connection: Connection, identity: Identity, raw: str) -> None:
    """Apply one client message. Replies are queued on the connection's channel."""
    connections = websocket.app.state.relay.connections
    permissions = websocket.app.state.permissions
    channel = connection.channel

    try:
        message = ClientMessage.model_validate_json(raw)
    except PydanticValidationError:
        channel.offer(_control("error", {"code": "VALIDATION_ERROR", "message": "Malformed message"}))
        return

    if message.action == "ping":
        channel.offer(_control("pong", {}))
        return

    if message.action not in ("subscribe", "unsubscribe"):
        channel.offer(
            _control("error", {"code": "VALIDATION_ERROR", "message": f"Unknown action: {message.action}"})
        )
        return

    subject_id = (message.subject_id or identity.subject_id).strip()
    if not subject_id:
        channel.offer(_control("error", {"code": "VALIDATION_ERROR", "message": "subjectId is required"}))
        return

    if message.action == "unsubscribe":
        connections.registry.unsubscribe(connection.connection_id, subject_id)
        channel.offer(_control("unsubscribed", {"subjectId": subject_id}))
        return

    if subject_id != identity.subject_id and not permissions.has_capability(identity.role, Capability.OPERATOR):
        held = sorted(permissions.capabilities_for(identity.role))
        logger.warning(
            "Subscription denied",
            extra={"subject_id": identity.subject_id, "requested_subject": subject_id},
        )
        channel.offer(
            _control(
                "error",
                {
                    "code": "PERMISSION_DENIED",
                    "message": "Subscribing to another subject requires sip:operator",
                    "required": [Capability.OPERATOR.value],
                    "held": held,
                },
            )
        )
        return

    connections.registry.subscribe(connection.connection_id, subject_id)
    channel.offer(_control("subscribed", {"subjectId": subject_id}))


async def _sender(websocket: WebSocket, connection: Connection) -> None:
    while True:
        message = await connection.channel.get()
        if message is None:
            break
        await websocket.send_json(message)
    if connection.channel.close_reason == "queue overflow":
        await websocket.close(code=CLOSE_OVERFLOW, reason="Subscriber queue overflow")


async def _receiver(websocket: WebSocket, connection: Connection, identity: Identity) -> None:
    while True:
        raw = await websocket.receive_text()
        handle_client_message(websocket, connection, identity, raw)


@router.websocket("/ws/events")
async def events_socket(websocket: WebSocket) -> None:
    identity = await _authenticate(websocket)
    if identity is None:
        await websocket.close(code=CLOSE_UNAUTHORIZED, reason="Invalid or missing token")
        return

    await websocket.accept()

    relay = websocket.app.state.relay
    store = websocket.app.state.store
    connection_id = uuid4().hex
    connection = relay.connections.register(connection_id, identity.subject_id, identity.role.value)

    ttl = (identity.expires_at - datetime.now(timezone.utc)).total_seconds()
    await store.put(
        SESSION_NAMESPACE,
        connection_id,
        {
            "connectionId": connection_id,
            "subjectId": identity.subject_id,
            "role": identity.role.value,
            "connectedAt": connection.connected_at.isoformat(),
        },
        ttl_seconds=ttl,
    )
    connection.channel.offer(
        _control("connected", {"connectionId": connection_id, "subjectId": identity.subject_id})
    )

    tasks = {
        asyncio.create_task(_sender(websocket, connection)),
        asyncio.create_task(_receiver(websocket, connection, identity)),
    }
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            if task.cancelled():
                continue
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.error("WebSocket task failed", extra={"connection_id": connection_id, "error": repr(exc)})
    finally:
        for task in tasks:
            task.cancel()
        relay.connections.unregister(connection_id)
        await store.delete(SESSION_NAMESPACE, connection_id)

"""
Call control endpoints.

Reads need ``sip:basic``; commands need ``sip:operator``. Successful
commands are echoed to the issuing operator's own subject so their other
real-time sessions see the result.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter

from sip_gateway.auth.middleware import BasicIdentityDep, OperatorIdentityDep
from sip_gateway.calls.schemas import InitiateCallRequest, MuteCallRequest, TransferCallRequest
from sip_gateway.dependencies import CommandsDep, RelayDep
from sip_gateway.shared.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/calls", tags=["calls"])


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/active")
async def active_calls(identity: BasicIdentityDep, commands: CommandsDep) -> dict[str, Any]:
    return await commands.get_active_calls(identity)


@router.get("/analytics/{time_range}")
async def call_analytics(time_range: str, identity: BasicIdentityDep, commands: CommandsDep) -> dict[str, Any]:
    return await commands.get_call_analytics(identity, time_range)


@router.get("/{call_id}")
async def call_details(call_id: str, identity: BasicIdentityDep, commands: CommandsDep) -> dict[str, Any]:
    return await commands.get_call_details(identity, call_id)


@router.post("/initiate")
async def initiate_call(
    body: InitiateCallRequest,
    identity: OperatorIdentityDep,
    commands: CommandsDep,
    relay: RelayDep,
) -> dict[str, Any]:
    result = await commands.initiate_call(identity, {**body.to_backend(), "initiatedByEmail": identity.email})
    logger.info(
        "Call initiated",
        extra={"subject_id": identity.subject_id, "from": body.from_, "to": body.to, "call_id": result.get("callId")},
    )
    relay.publish(
        identity.subject_id,
        "call-initiated",
        {"callId": result.get("callId"), "from": body.from_, "to": body.to, "timestamp": _now_iso()},
    )
    return result


@router.post("/{call_id}/hangup")
async def hangup_call(
    call_id: str,
    identity: OperatorIdentityDep,
    commands: CommandsDep,
    relay: RelayDep,
) -> dict[str, Any]:
    result = await commands.hangup_call(identity, call_id)
    logger.info("Call hung up", extra={"subject_id": identity.subject_id, "call_id": call_id})
    relay.publish(identity.subject_id, "call-ended", {"callId": call_id, "reason": "hangup", "timestamp": _now_iso()})
    return result


@router.post("/{call_id}/transfer")
async def transfer_call(
    call_id: str,
    body: TransferCallRequest,
    identity: OperatorIdentityDep,
    commands: CommandsDep,
    relay: RelayDep,
) -> dict[str, Any]:
    result = await commands.transfer_call(identity, call_id, body.destination)
    logger.info(
        "Call transferred",
        extra={"subject_id": identity.subject_id, "call_id": call_id, "destination": body.destination},
    )
    relay.publish(
        identity.subject_id,
        "call-transferred",
        {"callId": call_id, "destination": body.destination, "timestamp": _now_iso()},
    )
    return result


@router.post("/{call_id}/mute")
async def mute_call(
    call_id: str,
    identity: OperatorIdentityDep,
    commands: CommandsDep,
    relay: RelayDep,
    body: MuteCallRequest | None = None,
) -> dict[str, Any]:
    participant = body.participant if body else None
    result = await commands.mute_call(identity, call_id, participant)
    logger.info(
        "Call muted",
        extra={"subject_id": identity.subject_id, "call_id": call_id, "participant": participant},
    )
    relay.publish(
        identity.subject_id,
        "call-muted",
        {"callId": call_id, "participant": participant, "timestamp": _now_iso()},
    )
    return result


@router.post("/{call_id}/unmute")
async def unmute_call(
    call_id: str,
    identity: OperatorIdentityDep,
    commands: CommandsDep,
    relay: RelayDep,
    body: MuteCallRequest | None = None,
) -> dict[str, Any]:
    participant = body.participant if body else None
    result = await commands.unmute_call(identity, call_id, participant)
    logger.info(
        "Call unmuted",
        extra={"subject_id": identity.subject_id, "call_id": call_id, "participant": participant},
    )
    relay.publish(
        identity.subject_id,
        "call-unmuted",
        {"callId": call_id, "participant": participant, "timestamp": _now_iso()},
    )
    return result

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from sip_gateway.auth.middleware import BasicIdentityDep, OperatorIdentityDep
from sip_gateway.dependencies import CommandsDep
from sip_gateway.shared.logging import get_logger
from sip_gateway.sip.schemas import CallFileRequest, FreeSwitchCommandRequest

logger = get_logger(__name__)

router = APIRouter(prefix="/api/sip", tags=["sip"])


@router.get("/status")
async def freeswitch_status(identity: BasicIdentityDep, commands: CommandsDep) -> dict[str, Any]:
    return await commands.get_freeswitch_status(identity)


@router.get("/channels")
async def freeswitch_channels(identity: BasicIdentityDep, commands: CommandsDep) -> dict[str, Any]:
    return await commands.get_freeswitch_channels(identity)


@router.get("/health")
async def backend_health(identity: BasicIdentityDep, commands: CommandsDep) -> dict[str, Any]:
    return await commands.health_check(identity)


@router.get("/telemetry")
async def telemetry(identity: OperatorIdentityDep, commands: CommandsDep) -> dict[str, Any]:
    return await commands.get_system_telemetry(identity)


@router.post("/command")
async def execute_command(
    body: FreeSwitchCommandRequest,
    identity: OperatorIdentityDep,
    commands: CommandsDep,
) -> dict[str, Any]:
    logger.info("FreeSWITCH command", extra={"subject_id": identity.subject_id, "command": body.command})
    return await commands.execute_freeswitch_command(identity, body.command, body.args)


@router.get("/callfile-stats")
async def call_file_stats(identity: BasicIdentityDep, commands: CommandsDep) -> dict[str, Any]:
    return await commands.get_call_file_stats(identity)


@router.post("/callfile")
async def create_call_file(
    body: CallFileRequest,
    identity: OperatorIdentityDep,
    commands: CommandsDep,
) -> dict[str, Any]:
    result = await commands.create_call_file(identity, body.to_backend())
    logger.info(
        "Call file created",
        extra={"subject_id": identity.subject_id, "channel": body.channel, "extension": body.extension},
    )
    return result


@router.get("/callfile/{call_file_id}/status")
async def call_file_status(call_file_id: str, identity: BasicIdentityDep, commands: CommandsDep) -> dict[str, Any]:
    return await commands.get_call_file_status(identity, call_file_id)

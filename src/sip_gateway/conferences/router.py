from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from sip_gateway.auth.middleware import BasicIdentityDep, OperatorIdentityDep
from sip_gateway.conferences.schemas import (
    CreateConferenceRequest,
    JoinConferenceRequest,
    LeaveConferenceRequest,
)
from sip_gateway.dependencies import CommandsDep
from sip_gateway.shared.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/conferences", tags=["conferences"])


@router.post("")
async def create_conference(
    body: CreateConferenceRequest,
    identity: OperatorIdentityDep,
    commands: CommandsDep,
) -> dict[str, Any]:
    result = await commands.create_conference(identity, body.to_backend())
    logger.info("Conference created", extra={"subject_id": identity.subject_id, "conference_name": body.name})
    return result


@router.get("/{conference_id}")
async def conference_details(conference_id: str, identity: BasicIdentityDep, commands: CommandsDep) -> dict[str, Any]:
    return await commands.get_conference_details(identity, conference_id)


@router.post("/{conference_id}/join")
async def join_conference(
    conference_id: str,
    body: JoinConferenceRequest,
    identity: OperatorIdentityDep,
    commands: CommandsDep,
) -> dict[str, Any]:
    return await commands.join_conference(identity, conference_id, body.to_backend())


@router.post("/{conference_id}/leave")
async def leave_conference(
    conference_id: str,
    body: LeaveConferenceRequest,
    identity: OperatorIdentityDep,
    commands: CommandsDep,
) -> dict[str, Any]:
    return await commands.leave_conference(identity, conference_id, body.participant_id)

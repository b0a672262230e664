"""
Capability-checked command surface over the AEIMS client.

Every method takes the caller's ``Identity`` and checks the minimum
capability declared for the operation in ``OPERATION_CAPABILITIES`` before
anything reaches the backend.
"""

from __future__ import annotations

from typing import Any

from sip_gateway.aeims.client import AeimsClient
from sip_gateway.auth.jwt import Identity
from sip_gateway.auth.permissions import (
    OPERATION_CAPABILITIES,
    PermissionModel,
    get_permission_model,
    require_capability,
)


class CommandFacade:
    def __init__(self, client: AeimsClient, permissions: PermissionModel | None = None) -> None:
        self._client = client
        self._permissions = permissions or get_permission_model()

    @property
    def client(self) -> AeimsClient:
        return self._client

    def authorize(self, identity: Identity, operation: str) -> None:
        """Raise ``PermissionDeniedError`` unless ``identity`` may run ``operation``."""
        require_capability(identity.role, OPERATION_CAPABILITIES[operation], self._permissions)

    # Calls

    async def get_active_calls(self, identity: Identity) -> dict[str, Any]:
        self.authorize(identity, "get_active_calls")
        return await self._client.get_active_calls()

    async def get_call_details(self, identity: Identity, call_id: str) -> dict[str, Any]:
        self.authorize(identity, "get_call_details")
        return await self._client.get_call_details(call_id)

    async def get_call_analytics(self, identity: Identity, time_range: str = "24h") -> dict[str, Any]:
        self.authorize(identity, "get_call_analytics")
        return await self._client.get_call_analytics(time_range)

    async def initiate_call(self, identity: Identity, call_data: dict[str, Any]) -> dict[str, Any]:
        self.authorize(identity, "initiate_call")
        return await self._client.initiate_call({**call_data, "initiatedBy": identity.subject_id})

    async def hangup_call(self, identity: Identity, call_id: str) -> dict[str, Any]:
        self.authorize(identity, "hangup_call")
        return await self._client.hangup_call(call_id)

    async def transfer_call(self, identity: Identity, call_id: str, destination: str) -> dict[str, Any]:
        self.authorize(identity, "transfer_call")
        return await self._client.transfer_call(call_id, destination)

    async def mute_call(self, identity: Identity, call_id: str, participant: str | None = None) -> dict[str, Any]:
        self.authorize(identity, "mute_call")
        return await self._client.mute_call(call_id, participant)

    async def unmute_call(
        self, identity: Identity, call_id: str, participant: str | None = None
    ) -> dict[str, Any]:
        self.authorize(identity, "unmute_call")
        return await self._client.unmute_call(call_id, participant)

    # FreeSWITCH / system

    async def health_check(self, identity: Identity) -> dict[str, Any]:
        self.authorize(identity, "health_check")
        return await self._client.health_check()

    async def get_freeswitch_status(self, identity: Identity) -> dict[str, Any]:
        self.authorize(identity, "get_freeswitch_status")
        return await self._client.get_freeswitch_status()

    async def get_freeswitch_channels(self, identity: Identity) -> dict[str, Any]:
        self.authorize(identity, "get_freeswitch_channels")
        return await self._client.get_freeswitch_channels()

    async def execute_freeswitch_command(
        self, identity: Identity, command: str, args: list[str] | None = None
    ) -> dict[str, Any]:
        self.authorize(identity, "execute_freeswitch_command")
        return await self._client.execute_freeswitch_command(command, args)

    async def get_system_telemetry(self, identity: Identity) -> dict[str, Any]:
        self.authorize(identity, "get_system_telemetry")
        return await self._client.get_system_telemetry()

    # Call files

    async def create_call_file(self, identity: Identity, call_file_data: dict[str, Any]) -> dict[str, Any]:
        self.authorize(identity, "create_call_file")
        return await self._client.create_call_file({**call_file_data, "createdBy": identity.subject_id})

    async def get_call_file_status(self, identity: Identity, call_file_id: str) -> dict[str, Any]:
        self.authorize(identity, "get_call_file_status")
        return await self._client.get_call_file_status(call_file_id)

    async def get_call_file_stats(self, identity: Identity) -> dict[str, Any]:
        self.authorize(identity, "get_call_file_stats")
        return await self._client.get_call_file_stats()

    # Conferences

    async def create_conference(self, identity: Identity, conference_data: dict[str, Any]) -> dict[str, Any]:
        self.authorize(identity, "create_conference")
        return await self._client.create_conference({**conference_data, "createdBy": identity.subject_id})

    async def join_conference(
        self, identity: Identity, conference_id: str, participant_data: dict[str, Any]
    ) -> dict[str, Any]:
        self.authorize(identity, "join_conference")
        return await self._client.join_conference(conference_id, participant_data)

    async def leave_conference(self, identity: Identity, conference_id: str, participant_id: str) -> dict[str, Any]:
        self.authorize(identity, "leave_conference")
        return await self._client.leave_conference(conference_id, participant_id)

    async def get_conference_details(self, identity: Identity, conference_id: str) -> dict[str, Any]:
        self.authorize(identity, "get_conference_details")
        return await self._client.get_conference_details(conference_id)

"""
Tests for SIP infrastructure and conference endpoints.
"""

import json

import httpx
import pytest
from httpx import AsyncClient

from conftest import FakeBackend


class TestSipEndpoints:
    @pytest.mark.asyncio
    async def test_freeswitch_status_for_any_user(
        self, async_client: AsyncClient, auth_headers, backend: FakeBackend
    ) -> None:
        backend.on("GET", "/api/freeswitch/status", (200, {"status": "running", "sessions": 4}))

        response = await async_client.get("/api/sip/status", headers=auth_headers("user"))

        assert response.status_code == 200
        assert response.json()["sessions"] == 4

    @pytest.mark.asyncio
    async def test_command_is_forwarded(self, async_client: AsyncClient, auth_headers, backend: FakeBackend) -> None:
        backend.on("POST", "/api/freeswitch/command", (200, {"output": "+OK"}))

        response = await async_client.post(
            "/api/sip/command",
            json={"command": "show", "args": ["channels"]},
            headers=auth_headers("operator"),
        )

        assert response.json() == {"output": "+OK"}
        sent = json.loads(backend.calls("POST", "/api/freeswitch/command")[0].content)
        assert sent == {"command": "show", "args": ["channels"]}

    @pytest.mark.asyncio
    async def test_command_retried_once_on_connect_failure(
        self, async_client: AsyncClient, auth_headers, backend: FakeBackend
    ) -> None:
        backend.on("POST", "/api/freeswitch/command", httpx.ConnectError("refused"))

        response = await async_client.post(
            "/api/sip/command", json={"command": "reloadxml"}, headers=auth_headers("operator")
        )

        assert response.status_code == 503
        assert len(backend.calls("POST", "/api/freeswitch/command")) == 2

    @pytest.mark.asyncio
    async def test_call_file_requires_fields(
        self, async_client: AsyncClient, auth_headers, backend: FakeBackend
    ) -> None:
        response = await async_client.post(
            "/api/sip/callfile", json={"channel": "SIP/1001"}, headers=auth_headers("operator")
        )

        assert response.status_code == 400
        fields = {e["field"] for e in response.json()["error"]["details"]["errors"]}
        assert fields == {"body.context", "body.extension"}
        assert backend.calls("POST", "/api/callfiles/create") == []

    @pytest.mark.asyncio
    async def test_call_file_created(self, async_client: AsyncClient, auth_headers, backend: FakeBackend) -> None:
        backend.on("POST", "/api/callfiles/create", (200, {"id": "cf-1", "status": "pending"}))

        response = await async_client.post(
            "/api/sip/callfile",
            json={"channel": "SIP/1001", "context": "default", "extension": "2000", "priority": 1},
            headers=auth_headers("operator", "op-3"),
        )

        assert response.json()["id"] == "cf-1"
        sent = json.loads(backend.calls("POST", "/api/callfiles/create")[0].content)
        assert sent["createdBy"] == "op-3"
        assert sent["priority"] == 1


class TestConferenceEndpoints:
    @pytest.mark.asyncio
    async def test_create_conference(self, async_client: AsyncClient, auth_headers, backend: FakeBackend) -> None:
        backend.on("POST", "/api/conference/create", (200, {"conferenceId": "k1"}))

        response = await async_client.post(
            "/api/conferences", json={"name": "standup"}, headers=auth_headers("operator", "op-1")
        )

        assert response.json() == {"conferenceId": "k1"}
        sent = json.loads(backend.calls("POST", "/api/conference/create")[0].content)
        assert sent == {"name": "standup", "createdBy": "op-1"}

    @pytest.mark.asyncio
    async def test_user_cannot_create_conference(self, async_client: AsyncClient, auth_headers) -> None:
        response = await async_client.post("/api/conferences", json={"name": "x"}, headers=auth_headers("user"))

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_join_and_leave(self, async_client: AsyncClient, auth_headers, backend: FakeBackend) -> None:
        backend.on("POST", "/api/conference/k1/join", (200, {"joined": True})).on(
            "POST", "/api/conference/k1/leave", (200, {"left": True})
        )
        headers = auth_headers("operator")

        joined = await async_client.post("/api/conferences/k1/join", json={"participant": "1001"}, headers=headers)
        left = await async_client.post("/api/conferences/k1/leave", json={"participantId": "1001"}, headers=headers)

        assert joined.json() == {"joined": True}
        assert left.json() == {"left": True}
        assert json.loads(backend.calls("POST", "/api/conference/k1/leave")[0].content) == {"participantId": "1001"}

    @pytest.mark.asyncio
    async def test_missing_conference_is_404(self, async_client: AsyncClient, auth_headers) -> None:
        response = await async_client.get("/api/conferences/k404", headers=auth_headers("user"))

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

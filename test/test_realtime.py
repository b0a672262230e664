"""
Tests for the real-time WebSocket channel.
"""

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


def _receive_type(ws, expected: str) -> dict:
    message = ws.receive_json()
    assert message["type"] == expected, message
    return message


def test_invalid_token_is_refused(client: TestClient) -> None:
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/ws/events?token=garbage"):
            pass

    assert exc_info.value.code == 4001


def test_missing_token_is_refused(client: TestClient) -> None:
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/ws/events"):
            pass

    assert exc_info.value.code == 4001


def test_subscriber_receives_webhook_events(client: TestClient, issue_token) -> None:
    token = issue_token("user", "u1")

    with client.websocket_connect(f"/ws/events?token={token}") as ws:
        connected = _receive_type(ws, "connected")
        assert connected["data"]["subjectId"] == "u1"

        ws.send_json({"action": "subscribe"})
        assert _receive_type(ws, "subscribed")["data"]["subjectId"] == "u1"

        response = client.post(
            "/webhooks/events", json={"type": "call.started", "data": {"userId": "u1", "callId": "c-1"}}
        )
        assert response.status_code == 200

        pushed = _receive_type(ws, "call-started")
        assert pushed["channel"] == "call-event"
        assert pushed["data"]["callId"] == "c-1"


def test_bearer_header_is_accepted(client: TestClient, issue_token) -> None:
    headers = {"Authorization": f"Bearer {issue_token('user', 'u1')}"}

    with client.websocket_connect("/ws/events", headers=headers) as ws:
        _receive_type(ws, "connected")


def test_user_cannot_subscribe_to_other_subject(client: TestClient, issue_token) -> None:
    with client.websocket_connect(f"/ws/events?token={issue_token('user', 'u1')}") as ws:
        _receive_type(ws, "connected")
        ws.send_json({"action": "subscribe", "subjectId": "u2"})

        error = _receive_type(ws, "error")

    assert error["data"]["code"] == "PERMISSION_DENIED"
    assert error["data"]["held"] == ["sip:basic"]


def test_operator_can_subscribe_to_other_subject(client: TestClient, app, issue_token) -> None:
    with client.websocket_connect(f"/ws/events?token={issue_token('operator', 'op-1')}") as ws:
        _receive_type(ws, "connected")
        ws.send_json({"action": "subscribe", "subjectId": "u2"})
        _receive_type(ws, "subscribed")

        assert len(app.state.relay.registry.subscribers_of("u2")) == 1


def test_ping_and_malformed_messages(client: TestClient, issue_token) -> None:
    with client.websocket_connect(f"/ws/events?token={issue_token('user', 'u1')}") as ws:
        _receive_type(ws, "connected")

        ws.send_json({"action": "ping"})
        _receive_type(ws, "pong")

        ws.send_text("{not json")
        assert _receive_type(ws, "error")["data"]["code"] == "VALIDATION_ERROR"

        ws.send_json({"action": "dance"})
        assert _receive_type(ws, "error")["data"]["code"] == "VALIDATION_ERROR"


def test_disconnect_cleans_up(client: TestClient, app, issue_token) -> None:
    with client.websocket_connect(f"/ws/events?token={issue_token('user', 'u1')}") as ws:
        _receive_type(ws, "connected")
        ws.send_json({"action": "subscribe"})
        _receive_type(ws, "subscribed")
        assert len(app.state.relay.connections) == 1

    assert len(app.state.relay.connections) == 0
    assert not app.state.relay.registry.subscribers_of("u1")

"""
Tests for usage records and cost calculation.
"""

import pytest

from sip_gateway.relay.billing import AeimsBillingRecorder, calculate_call_cost, usage_from_event
from sip_gateway.relay.events import InboundEvent


@pytest.mark.parametrize(
    ("duration", "cost"),
    [(1, 0.05), (60, 0.05), (61, 0.1), (125, 0.15), (3600, 3.0)],
)
def test_cost_per_started_minute(duration: int, cost: float) -> None:
    assert calculate_call_cost(duration, 0.05) == pytest.approx(cost)


def test_usage_from_call_ended() -> None:
    event = InboundEvent(
        type="call.ended",
        payload={"userId": "u1", "duration": 125, "endTime": "2026-01-15T12:02:05Z"},
    )

    usage = usage_from_event(event, 0.05)

    assert usage is not None
    assert usage.subject_id == "u1"
    assert usage.kind == "call"
    assert usage.duration_seconds == 125
    assert usage.cost == pytest.approx(0.15)
    assert usage.timestamp == "2026-01-15T12:02:05Z"
    assert usage.to_payload()["userId"] == "u1"


@pytest.mark.parametrize(
    ("event_type", "payload"),
    [
        ("call.started", {"userId": "u1", "duration": 10}),
        ("call.ended", {"duration": 10}),
        ("call.ended", {"userId": "u1"}),
        ("call.ended", {"userId": "u1", "duration": 0}),
        ("call.ended", {"userId": "u1", "duration": "soon"}),
        ("call.ended", {"userId": "u1", "duration": float("inf")}),
        ("call.ended", {"userId": "u1", "duration": float("nan")}),
    ],
)
def test_no_usage_when_not_billable(event_type: str, payload: dict) -> None:
    assert usage_from_event(InboundEvent(type=event_type, payload=payload), 0.05) is None


@pytest.mark.asyncio
async def test_recorder_posts_to_backend(make_client, backend) -> None:
    backend.on("POST", "/api/billing/usage", (200, {"recorded": True}))
    recorder = AeimsBillingRecorder(make_client(backend))
    usage = usage_from_event(InboundEvent(type="call.ended", payload={"userId": "u1", "duration": 61}), 0.05)

    await recorder.record_usage(usage)

    assert len(backend.calls("POST", "/api/billing/usage")) == 1

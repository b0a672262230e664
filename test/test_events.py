"""
Tests for backend event classification.
"""

import pytest

from sip_gateway.relay.events import EventCategory, InboundEvent, classify


@pytest.mark.parametrize(
    ("event_type", "category", "channel", "name"),
    [
        ("call.started", EventCategory.CALL, "call-event", "call-started"),
        ("call.ended", EventCategory.CALL, "call-event", "call-ended"),
        ("call.transferred", EventCategory.CALL, "call-event", "call-transferred"),
        ("conference.created", EventCategory.CONFERENCE, "conference-event", "conference-created"),
        ("conference.participant.joined", EventCategory.CONFERENCE, "conference-event", "participant-joined"),
        ("conference.participant.left", EventCategory.CONFERENCE, "conference-event", "participant-left"),
        ("system.health", EventCategory.SYSTEM, "system-event", "health-update"),
        ("call.parked", EventCategory.CALL, "call-event", "call-parked"),
        ("system.maintenance_window", EventCategory.SYSTEM, "system-event", "system-maintenance-window"),
        ("voicemail.left", EventCategory.UNKNOWN, "unknown-event", "voicemail.left"),
    ],
)
def test_classification(event_type: str, category: EventCategory, channel: str, name: str) -> None:
    classified = classify(InboundEvent(type=event_type, payload={"userId": "u1"}))

    assert classified.category is category
    assert classified.channel == channel
    assert classified.name == name


@pytest.mark.parametrize(
    ("payload", "subject"),
    [
        ({"userId": "u1"}, "u1"),
        ({"user_id": 42}, "42"),
        ({"subjectId": "s-1"}, "s-1"),
        ({"userId": ""}, None),
        ({}, None),
    ],
)
def test_subject_extraction(payload: dict, subject) -> None:
    assert InboundEvent(type="call.started", payload=payload).subject_id == subject


def test_message_shape() -> None:
    message = classify(InboundEvent(type="call.started", payload={"userId": "u1", "callId": "c"})).to_message()

    assert set(message) == {"channel", "type", "data", "timestamp"}
    assert message["data"] == {"userId": "u1", "callId": "c"}

"""
Domain models for backend events flowing through the relay.

Inbound events arrive as ``{type, data}`` webhooks from the telephony
backend. Classification maps each backend type onto a push channel and
event name; unknown types are kept and forwarded on ``unknown-event``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EventCategory(str, Enum):
    """Coarse classification of backend event types."""

    CALL = "call"
    CONFERENCE = "conference"
    SYSTEM = "system"
    UNKNOWN = "unknown"


class BackendEventType(str, Enum):
    """Backend event types with a dedicated push name."""

    CALL_STARTED = "call.started"
    CALL_ENDED = "call.ended"
    CALL_TRANSFERRED = "call.transferred"
    CONFERENCE_CREATED = "conference.created"
    PARTICIPANT_JOINED = "conference.participant.joined"
    PARTICIPANT_LEFT = "conference.participant.left"
    SYSTEM_HEALTH = "system.health"


CATEGORY_CHANNELS: Mapping[EventCategory, str] = MappingProxyType(
    {
        EventCategory.CALL: "call-event",
        EventCategory.CONFERENCE: "conference-event",
        EventCategory.SYSTEM: "system-event",
        EventCategory.UNKNOWN: "unknown-event",
    }
)

# backend type -> (category, pushed event name)
KNOWN_EVENTS: Mapping[str, tuple[EventCategory, str]] = MappingProxyType(
    {
        BackendEventType.CALL_STARTED.value: (EventCategory.CALL, "call-started"),
        BackendEventType.CALL_ENDED.value: (EventCategory.CALL, "call-ended"),
        BackendEventType.CALL_TRANSFERRED.value: (EventCategory.CALL, "call-transferred"),
        BackendEventType.CONFERENCE_CREATED.value: (EventCategory.CONFERENCE, "conference-created"),
        BackendEventType.PARTICIPANT_JOINED.value: (EventCategory.CONFERENCE, "participant-joined"),
        BackendEventType.PARTICIPANT_LEFT.value: (EventCategory.CONFERENCE, "participant-left"),
        BackendEventType.SYSTEM_HEALTH.value: (EventCategory.SYSTEM, "health-update"),
    }
)

_PREFIX_CATEGORIES = (
    ("call.", EventCategory.CALL),
    ("conference.", EventCategory.CONFERENCE),
    ("system.", EventCategory.SYSTEM),
)

SUBJECT_KEYS = ("userId", "user_id", "subjectId")


@dataclass(frozen=True)
class InboundEvent:
    """A backend notification, alive only for the duration of dispatch."""

    type: str
    payload: Mapping[str, Any] = field(default_factory=dict)
    received_at: datetime = field(default_factory=_utcnow)

    @property
    def subject_id(self) -> str | None:
        for key in SUBJECT_KEYS:
            value = self.payload.get(key)
            if value is not None and str(value).strip():
                return str(value)
        return None


@dataclass(frozen=True)
class ClassifiedEvent:
    """Message pushed to real-time connections."""

    category: EventCategory
    channel: str
    name: str
    data: Mapping[str, Any]
    subject_id: str | None
    timestamp: datetime = field(default_factory=_utcnow)

    @property
    def is_broadcast(self) -> bool:
        return self.category is EventCategory.SYSTEM

    def to_message(self) -> dict[str, Any]:
        return {
            "channel": self.channel,
            "type": self.name,
            "data": dict(self.data),
            "timestamp": self.timestamp.isoformat(),
        }


def kebab(event_type: str) -> str:
    return event_type.replace(".", "-").replace("_", "-")


def classify(event: InboundEvent) -> ClassifiedEvent:
    """Map an inbound event onto its channel and push name."""
    known = KNOWN_EVENTS.get(event.type)
    if known is not None:
        category, name = known
    else:
        category = EventCategory.UNKNOWN
        for prefix, prefix_category in _PREFIX_CATEGORIES:
            if event.type.startswith(prefix):
                category = prefix_category
                break
        # unknown-event keeps the raw backend type as its name
        name = event.type if category is EventCategory.UNKNOWN else kebab(event.type)

    return ClassifiedEvent(
        category=category,
        channel=CATEGORY_CHANNELS[category],
        name=name,
        data=event.payload,
        subject_id=event.subject_id,
    )

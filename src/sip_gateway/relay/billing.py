"""
Usage records for completed calls and the billing collaborator seam.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Protocol

from sip_gateway.aeims.client import AeimsClient
from sip_gateway.relay.events import BackendEventType, InboundEvent


@dataclass(frozen=True)
class UsageRecord:
    subject_id: str
    kind: str
    duration_seconds: int
    cost: float
    timestamp: str

    def to_payload(self) -> dict[str, Any]:
        return {
            "userId": self.subject_id,
            "type": self.kind,
            "duration": self.duration_seconds,
            "cost": self.cost,
            "timestamp": self.timestamp,
        }


class BillingCollaborator(Protocol):
    """Anything that can accept a usage record."""

    async def record_usage(self, record: UsageRecord) -> None: ...


class AeimsBillingRecorder:
    """Sends usage records to the backend's billing endpoint."""

    def __init__(self, client: AeimsClient) -> None:
        self._client = client

    async def record_usage(self, record: UsageRecord) -> None:
        await self._client.record_usage(record.to_payload())


def calculate_call_cost(duration_seconds: float, rate_per_minute: float) -> float:
    """Charge per started minute."""
    minutes = math.ceil(duration_seconds / 60)
    return round(minutes * rate_per_minute, 6)


def usage_from_event(event: InboundEvent, rate_per_minute: float) -> UsageRecord | None:
    """Build the usage record for a ``call.ended`` event, if it carries enough to bill."""
    if event.type != BackendEventType.CALL_ENDED.value:
        return None
    subject_id = event.subject_id
    duration = event.payload.get("duration")
    if subject_id is None or isinstance(duration, bool):
        return None
    try:
        duration_seconds = int(duration)
    except (TypeError, ValueError, OverflowError):
        return None
    if duration_seconds <= 0:
        return None

    end_time = event.payload.get("endTime")
    timestamp = str(end_time) if end_time else event.received_at.isoformat()
    return UsageRecord(
        subject_id=subject_id,
        kind="call",
        duration_seconds=duration_seconds,
        cost=calculate_call_cost(duration_seconds, rate_per_minute),
        timestamp=timestamp,
    )

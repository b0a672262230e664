"""
Event relay: classify backend events and fan them out to connections.

Dispatch per event:
    1. classify the backend type onto a channel and push name
    2. resolve targets (system events and events without a subject go to
       every connection, otherwise the subject's subscribers)
    3. enqueue on each target's bounded channel
    4. for billable ``call.ended`` events, hand a usage record to the
       billing collaborator as a background task

Steps 1-3 never yield to the event loop, so events for one subject are
enqueued in arrival order. Delivery is at-most-once with no replay.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from sip_gateway.relay.billing import BillingCollaborator, UsageRecord, usage_from_event
from sip_gateway.relay.connections import ConnectionManager
from sip_gateway.relay.events import (
    CATEGORY_CHANNELS,
    ClassifiedEvent,
    EventCategory,
    InboundEvent,
    classify,
)
from sip_gateway.shared.logging import get_logger, log_with_context

logger = get_logger(__name__)


@dataclass(frozen=True)
class DispatchResult:
    event: ClassifiedEvent
    targets: int
    delivered: int
    usage: UsageRecord | None = None


class EventRelay:
    def __init__(
        self,
        connections: ConnectionManager,
        billing: BillingCollaborator | None = None,
        call_rate_per_minute: float = 0.05,
    ) -> None:
        self.connections = connections
        self._billing = billing
        self._rate = call_rate_per_minute
        self._background: set[asyncio.Task[None]] = set()

    @property
    def registry(self):
        return self.connections.registry

    def resolve_targets(self, event: ClassifiedEvent) -> frozenset[str]:
        if event.is_broadcast or event.subject_id is None:
            return self.connections.connection_ids()
        return self.registry.subscribers_of(event.subject_id)

    async def dispatch(self, event: InboundEvent) -> DispatchResult:
        classified = classify(event)
        if classified.category is EventCategory.UNKNOWN:
            logger.info("Unknown event type forwarded", extra={"event_type": event.type})

        targets = self.resolve_targets(classified)
        delivered = self.connections.deliver(targets, classified.to_message())

        try:
            usage = usage_from_event(event, self._rate)
        except Exception:
            logger.exception("Usage extraction failed", extra={"event_type": event.type})
            usage = None
        if usage is not None and self._billing is not None:
            self._spawn(self._record_usage(usage))

        logger.info(
            "Event dispatched",
            extra={
                "event_type": event.type,
                "channel": classified.channel,
                "subject_id": classified.subject_id,
                "targets": len(targets),
                "delivered": delivered,
            },
        )
        return DispatchResult(event=classified, targets=len(targets), delivered=delivered, usage=usage)

    def publish(
        self,
        subject_id: str,
        name: str,
        data: dict[str, Any],
        category: EventCategory = EventCategory.CALL,
    ) -> int:
        """Push a gateway-originated event to one subject's subscribers."""
        event = ClassifiedEvent(
            category=category,
            channel=CATEGORY_CHANNELS[category],
            name=name,
            data=data,
            subject_id=subject_id,
        )
        return self.connections.deliver(self.registry.subscribers_of(subject_id), event.to_message())

    def broadcast(self, channel: str, name: str, data: dict[str, Any]) -> int:
        """Push to every live connection on an arbitrary channel."""
        message = ClassifiedEvent(
            category=EventCategory.SYSTEM,
            channel=channel,
            name=name,
            data=data,
            subject_id=None,
        ).to_message()
        return self.connections.deliver(self.connections.connection_ids(), message)

    async def _record_usage(self, usage: UsageRecord) -> None:
        try:
            await self._billing.record_usage(usage)
        except Exception as e:
            logger.error(
                "Failed to record usage",
                extra={"subject_id": usage.subject_id, "duration_seconds": usage.duration_seconds, "error": str(e)},
            )
            return
        log_with_context(
            logger,
            logging.INFO,
            "Usage recorded",
            subject_id=usage.subject_id,
            duration_seconds=usage.duration_seconds,
            cost=usage.cost,
            usage_timestamp=usage.timestamp,
        )

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def drain(self) -> None:
        """Wait for outstanding billing tasks."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

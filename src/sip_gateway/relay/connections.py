"""
Live real-time connections and their bounded outbound queues.

Each connection owns an ``OutboundChannel``. The relay only ever calls the
non-blocking ``offer``; a separate sender task per connection drains the
queue onto the socket, so a slow client never stalls dispatch to others.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

from sip_gateway.relay.registry import SubscriptionRegistry
from sip_gateway.shared.logging import get_logger

logger = get_logger(__name__)

OverflowPolicy = Literal["drop_oldest", "disconnect"]

_CLOSED = object()


class OutboundChannel:
    """Bounded FIFO of messages waiting to be sent to one connection."""

    def __init__(self, connection_id: str, maxsize: int = 100, policy: OverflowPolicy = "drop_oldest") -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")
        self.connection_id = connection_id
        self.policy = policy
        self.dropped = 0
        self.close_reason: str | None = None
        self._maxsize = maxsize
        # One slot beyond maxsize is reserved for the close marker
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=maxsize + 1)

    @property
    def closed(self) -> bool:
        return self.close_reason is not None

    def qsize(self) -> int:
        return min(self._queue.qsize(), self._maxsize)

    def offer(self, message: dict[str, Any]) -> bool:
        """Enqueue without blocking. Returns False if the message was not accepted."""
        if self.closed:
            return False
        if self._queue.qsize() >= self._maxsize:
            if self.policy == "disconnect":
                logger.warning(
                    "Subscriber queue overflow, disconnecting",
                    extra={"connection_id": self.connection_id, "queue_size": self._maxsize},
                )
                self.close("queue overflow")
                return False
            self._queue.get_nowait()
            self.dropped += 1
            logger.warning(
                "Subscriber queue overflow, dropped oldest message",
                extra={"connection_id": self.connection_id, "dropped_total": self.dropped},
            )
        self._queue.put_nowait(message)
        return True

    def close(self, reason: str = "closed") -> None:
        if self.closed:
            return
        self.close_reason = reason
        # Pending messages are discarded; delivery is best-effort
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)

    async def get(self) -> dict[str, Any] | None:
        """Wait for the next message; None once the channel is closed."""
        item = await self._queue.get()
        if item is _CLOSED:
            return None
        return item

    def drain_nowait(self) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is _CLOSED:
                self._queue.put_nowait(_CLOSED)
                break
            items.append(item)
        return items


@dataclass
class Connection:
    connection_id: str
    subject_id: str
    role: str
    channel: OutboundChannel
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ConnectionManager:
    """Tracks live connections and keeps the subscription registry in step."""

    def __init__(
        self,
        registry: SubscriptionRegistry | None = None,
        queue_size: int = 100,
        overflow_policy: OverflowPolicy = "drop_oldest",
    ) -> None:
        self.registry = registry or SubscriptionRegistry()
        self._queue_size = queue_size
        self._overflow_policy = overflow_policy
        self._connections: dict[str, Connection] = {}

    def register(self, connection_id: str, subject_id: str, role: str = "user") -> Connection:
        if connection_id in self._connections:
            raise ValueError(f"Connection already registered: {connection_id}")
        connection = Connection(
            connection_id=connection_id,
            subject_id=subject_id,
            role=role,
            channel=OutboundChannel(connection_id, self._queue_size, self._overflow_policy),
        )
        self._connections[connection_id] = connection
        logger.info(
            "Connection registered",
            extra={"connection_id": connection_id, "subject_id": subject_id, "active": len(self._connections)},
        )
        return connection

    def unregister(self, connection_id: str, reason: str = "disconnected") -> None:
        """Remove the connection and every subscription it held. Idempotent."""
        connection = self._connections.pop(connection_id, None)
        subjects = self.registry.remove_connection(connection_id)
        if connection is None:
            return
        connection.channel.close(reason)
        logger.info(
            "Connection removed",
            extra={
                "connection_id": connection_id,
                "reason": reason,
                "subscriptions_cleared": len(subjects),
                "active": len(self._connections),
            },
        )

    def get(self, connection_id: str) -> Connection | None:
        return self._connections.get(connection_id)

    def connection_ids(self) -> frozenset[str]:
        return frozenset(self._connections)

    def deliver(self, connection_ids: frozenset[str] | set[str], message: dict[str, Any]) -> int:
        """Offer ``message`` to each connection. Never awaits.

        Connections whose channel closed on overflow are unregistered.
        Returns the number of connections that accepted the message.
        """
        delivered = 0
        overflowed: list[str] = []
        for connection_id in connection_ids:
            connection = self._connections.get(connection_id)
            if connection is None:
                continue
            if connection.channel.offer(message):
                delivered += 1
            elif connection.channel.closed:
                overflowed.append(connection_id)
        for connection_id in overflowed:
            self.unregister(connection_id, reason="queue overflow")
        return delivered

    def __len__(self) -> int:
        return len(self._connections)

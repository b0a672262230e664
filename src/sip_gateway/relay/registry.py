"""
Subscription registry: which connections listen to which subject.

Many-to-many, kept as two indexes that are always updated together.
All operations are idempotent and synchronous, so the relay can resolve
targets and enqueue without yielding to the event loop in between.
"""

from __future__ import annotations

from sip_gateway.shared.logging import get_logger

logger = get_logger(__name__)


class SubscriptionRegistry:
    def __init__(self) -> None:
        self._by_subject: dict[str, set[str]] = {}
        self._by_connection: dict[str, set[str]] = {}

    def subscribe(self, connection_id: str, subject_id: str) -> bool:
        """Returns True if the subscription is new."""
        subscribers = self._by_subject.setdefault(subject_id, set())
        if connection_id in subscribers:
            return False
        subscribers.add(connection_id)
        self._by_connection.setdefault(connection_id, set()).add(subject_id)
        logger.debug("Subscribed", extra={"connection_id": connection_id, "subject_id": subject_id})
        return True

    def unsubscribe(self, connection_id: str, subject_id: str) -> bool:
        subscribers = self._by_subject.get(subject_id)
        if not subscribers or connection_id not in subscribers:
            return False
        subscribers.discard(connection_id)
        if not subscribers:
            del self._by_subject[subject_id]
        subjects = self._by_connection.get(connection_id)
        if subjects is not None:
            subjects.discard(subject_id)
            if not subjects:
                del self._by_connection[connection_id]
        return True

    def remove_connection(self, connection_id: str) -> set[str]:
        """Drop every subscription held by ``connection_id``; returns the subjects it had."""
        subjects = self._by_connection.pop(connection_id, set())
        for subject_id in subjects:
            subscribers = self._by_subject.get(subject_id)
            if subscribers is None:
                continue
            subscribers.discard(connection_id)
            if not subscribers:
                del self._by_subject[subject_id]
        return subjects

    def subscribers_of(self, subject_id: str) -> frozenset[str]:
        return frozenset(self._by_subject.get(subject_id, ()))

    def subscriptions_of(self, connection_id: str) -> frozenset[str]:
        return frozenset(self._by_connection.get(connection_id, ()))

    def __len__(self) -> int:
        return sum(len(s) for s in self._by_subject.values())

"""
Key/value store used for the little state the gateway keeps.

Token revocations, websocket session records and webhook registrations go
through ``KeyValueStore`` so that components never touch a process-wide map
directly. ``InMemoryStore`` serves dev and tests; ``SQLAlchemyStore`` keeps
the same contract on top of a database.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

from sqlalchemy import delete, select

from sip_gateway.config import Settings, get_settings
from sip_gateway.shared.database import DatabaseManager, KeyValueEntry
from sip_gateway.shared.logging import get_logger

logger = get_logger(__name__)


class KeyValueStore(Protocol):
    """Protocol for namespaced key/value storage."""

    async def get(self, namespace: str, key: str) -> Any | None: ...

    async def put(
        self,
        namespace: str,
        key: str,
        value: Any,
        ttl_seconds: float | None = None,
    ) -> None: ...

    async def delete(self, namespace: str, key: str) -> bool: ...

    async def list_by_key(self, namespace: str, prefix: str = "") -> dict[str, Any]: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _expiry(ttl_seconds: float | None, now: datetime) -> datetime | None:
    if ttl_seconds is None:
        return None
    return now + timedelta(seconds=max(ttl_seconds, 0))


class InMemoryStore:
    """Process-local store. Expired entries are evicted lazily on read."""

    def __init__(self, clock=_utcnow) -> None:
        self._clock = clock
        self._data: dict[str, dict[str, tuple[Any, datetime | None]]] = {}
        self._lock = asyncio.Lock()

    def _alive(self, expires_at: datetime | None) -> bool:
        return expires_at is None or expires_at > self._clock()

    async def get(self, namespace: str, key: str) -> Any | None:
        async with self._lock:
            entry = self._data.get(namespace, {}).get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if not self._alive(expires_at):
                del self._data[namespace][key]
                return None
            return value

    async def put(
        self,
        namespace: str,
        key: str,
        value: Any,
        ttl_seconds: float | None = None,
    ) -> None:
        async with self._lock:
            self._data.setdefault(namespace, {})[key] = (value, _expiry(ttl_seconds, self._clock()))

    async def delete(self, namespace: str, key: str) -> bool:
        async with self._lock:
            return self._data.get(namespace, {}).pop(key, None) is not None

    async def list_by_key(self, namespace: str, prefix: str = "") -> dict[str, Any]:
        async with self._lock:
            bucket = self._data.get(namespace, {})
            expired = [k for k, (_, exp) in bucket.items() if not self._alive(exp)]
            for k in expired:
                del bucket[k]
            return {k: v for k, (v, _) in bucket.items() if k.startswith(prefix)}


class SQLAlchemyStore:
    """Database-backed store on the ``kv_entries`` table."""

    def __init__(self, db: DatabaseManager, clock=_utcnow) -> None:
        self._db = db
        self._clock = clock

    async def initialize(self) -> None:
        await self._db.create_all()

    async def close(self) -> None:
        await self._db.close()

    def _alive(self, entry: KeyValueEntry) -> bool:
        if entry.expires_at is None:
            return True
        expires_at = entry.expires_at
        # SQLite hands back naive datetimes
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at > self._clock()

    async def get(self, namespace: str, key: str) -> Any | None:
        async with self._db.session() as session:
            stmt = select(KeyValueEntry).where(
                KeyValueEntry.namespace == namespace,
                KeyValueEntry.key == key,
            )
            entry = (await session.execute(stmt)).scalar_one_or_none()
            if entry is None:
                return None
            if not self._alive(entry):
                await session.delete(entry)
                return None
            return entry.value

    async def put(
        self,
        namespace: str,
        key: str,
        value: Any,
        ttl_seconds: float | None = None,
    ) -> None:
        expires_at = _expiry(ttl_seconds, self._clock())
        async with self._db.session() as session:
            stmt = select(KeyValueEntry).where(
                KeyValueEntry.namespace == namespace,
                KeyValueEntry.key == key,
            )
            entry = (await session.execute(stmt)).scalar_one_or_none()
            if entry is None:
                session.add(
                    KeyValueEntry(namespace=namespace, key=key, value=value, expires_at=expires_at)
                )
            else:
                entry.value = value
                entry.expires_at = expires_at

    async def delete(self, namespace: str, key: str) -> bool:
        async with self._db.session() as session:
            stmt = delete(KeyValueEntry).where(
                KeyValueEntry.namespace == namespace,
                KeyValueEntry.key == key,
            )
            result = await session.execute(stmt)
            return bool(result.rowcount)

    async def list_by_key(self, namespace: str, prefix: str = "") -> dict[str, Any]:
        async with self._db.session() as session:
            stmt = select(KeyValueEntry).where(KeyValueEntry.namespace == namespace)
            if prefix:
                stmt = stmt.where(KeyValueEntry.key.startswith(prefix))
            entries = (await session.execute(stmt)).scalars().all()
            result: dict[str, Any] = {}
            for entry in entries:
                if self._alive(entry):
                    result[entry.key] = entry.value
                else:
                    await session.delete(entry)
            return result


def create_store(settings: Settings | None = None) -> KeyValueStore:
    """Build the store selected by ``Settings.store_backend``."""
    settings = settings or get_settings()
    if settings.store_backend == "sql":
        logger.info("Using SQL key/value store", extra={"database_url": settings.database_url.split("@")[-1]})
        return SQLAlchemyStore(DatabaseManager(settings.database_url))
    return InMemoryStore()

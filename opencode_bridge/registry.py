"""Map conversation keys to OpenCode session ids."""

from __future__ import annotations

import asyncio
import logging
import uuid
import weakref
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol

from .client import BackendClient
from .config import SessionFallbackPolicy
from .errors import BridgeError

logger = logging.getLogger("opencode_bridge.registry")


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True, frozen=True)
class SessionRecord:
    key: str
    session_id: str
    created_at: datetime = field(default_factory=_utc_now)
    persisted: bool = True


class SessionStore(Protocol):
    async def get(self, key: str) -> SessionRecord | None: ...

    async def put_if_absent(self, record: SessionRecord) -> SessionRecord: ...

    async def list_records(self) -> list[SessionRecord]: ...

    async def clear(self) -> None: ...


class InMemorySessionStore:
    def __init__(self) -> None:
        self._records: dict[str, SessionRecord] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> SessionRecord | None:
        async with self._lock:
            return self._records.get(key)

    async def put_if_absent(self, record: SessionRecord) -> SessionRecord:
        async with self._lock:
            return self._records.setdefault(record.key, record)

    async def list_records(self) -> list[SessionRecord]:
        async with self._lock:
            return list(self._records.values())

    async def clear(self) -> None:
        async with self._lock:
            self._records.clear()


class SessionRegistry:
    """Get-or-create OpenCode sessions, one per conversation key.

    Creation is serialized per key: concurrent first use of a key issues a
    single ``create_session`` call and every caller sees the same id. Keys
    never interfere with each other.
    """

    def __init__(
        self,
        client: BackendClient,
        *,
        store: SessionStore | None = None,
        title: str = "OpenAI Bridge Session",
        default_key: str = "default",
        fallback: SessionFallbackPolicy = SessionFallbackPolicy.LOCAL,
    ) -> None:
        self._client = client
        self._store: SessionStore = store or InMemorySessionStore()
        self._title = title
        self._default_key = default_key
        self._fallback = fallback
        self._key_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    @property
    def store(self) -> SessionStore:
        return self._store

    async def start(self) -> None:
        """Nothing to warm up; the store is ready on construction."""

    async def stop(self) -> None:
        """Forget every mapping; sessions stay alive on the OpenCode side."""
        await self._store.clear()
        self._key_locks.clear()

    async def resolve(self, key: str | None = None) -> str:
        record = await self.resolve_record(key)
        return record.session_id

    async def resolve_record(self, key: str | None = None) -> SessionRecord:
        resolved_key = key or self._default_key
        existing = await self._store.get(resolved_key)
        if existing is not None:
            return existing
        lock = self._key_locks.get(resolved_key)
        if lock is None:
            lock = asyncio.Lock()
            self._key_locks[resolved_key] = lock
        async with lock:
            existing = await self._store.get(resolved_key)
            if existing is not None:
                return existing
            record = await self._create(resolved_key)
            return await self._store.put_if_absent(record)

    async def _create(self, key: str) -> SessionRecord:
        try:
            session = await self._client.create_session(self._title)
        except BridgeError as exc:
            if self._fallback is SessionFallbackPolicy.RAISE:
                raise
            local_id = f"session-{uuid.uuid4()}"
            logger.warning(
                "session_fallback",
                extra={"key": key, "session_id": local_id, "error": str(exc)},
            )
            return SessionRecord(key=key, session_id=local_id, persisted=False)
        logger.info("session_created", extra={"key": key, "session_id": session.id})
        return SessionRecord(key=key, session_id=session.id)


__all__ = ["InMemorySessionStore", "SessionRecord", "SessionRegistry", "SessionStore"]

import asyncio

import pytest
from fakes import FakeBackend

from opencode_bridge.config import SessionFallbackPolicy
from opencode_bridge.errors import BackendUnavailableError
from opencode_bridge.registry import InMemorySessionStore, SessionRecord, SessionRegistry


@pytest.mark.asyncio
async def test_resolve_reuses_session_for_same_key() -> None:
    backend = FakeBackend()
    registry = SessionRegistry(backend)

    first = await registry.resolve("alice")
    second = await registry.resolve("alice")

    assert first == second
    assert backend.create_calls == 1


@pytest.mark.asyncio
async def test_concurrent_first_use_creates_one_session() -> None:
    backend = FakeBackend()
    backend.create_delay = 0.01
    registry = SessionRegistry(backend)

    ids = await asyncio.gather(*(registry.resolve("alice") for _ in range(10)))

    assert len(set(ids)) == 1
    assert backend.create_calls == 1


@pytest.mark.asyncio
async def test_distinct_keys_get_distinct_sessions() -> None:
    backend = FakeBackend()
    registry = SessionRegistry(backend)

    alice, bob = await asyncio.gather(registry.resolve("alice"), registry.resolve("bob"))

    assert alice != bob
    assert backend.create_calls == 2


@pytest.mark.asyncio
async def test_missing_key_uses_default_conversation() -> None:
    backend = FakeBackend()
    registry = SessionRegistry(backend, default_key="shared")

    anonymous = await registry.resolve(None)
    record = await registry.resolve_record("shared")

    assert record.session_id == anonymous
    assert record.key == "shared"


@pytest.mark.asyncio
async def test_local_fallback_when_backend_cannot_create() -> None:
    backend = FakeBackend()
    backend.create_error = BackendUnavailableError("connection refused")
    registry = SessionRegistry(backend, fallback=SessionFallbackPolicy.LOCAL)

    record = await registry.resolve_record("alice")

    assert record.session_id.startswith("session-")
    assert record.persisted is False
    assert await registry.resolve("alice") == record.session_id
    assert backend.create_calls == 1


@pytest.mark.asyncio
async def test_raise_fallback_propagates_and_caches_nothing() -> None:
    backend = FakeBackend()
    backend.create_error = BackendUnavailableError("connection refused")
    registry = SessionRegistry(backend, fallback=SessionFallbackPolicy.RAISE)

    with pytest.raises(BackendUnavailableError):
        await registry.resolve("alice")

    backend.create_error = None
    assert (await registry.resolve("alice")).startswith("ses-")


@pytest.mark.asyncio
async def test_stop_forgets_mappings() -> None:
    backend = FakeBackend()
    store = InMemorySessionStore()
    registry = SessionRegistry(backend, store=store)
    await registry.resolve("alice")

    await registry.stop()

    assert await store.list_records() == []
    await registry.resolve("alice")
    assert backend.create_calls == 2


@pytest.mark.asyncio
async def test_store_put_if_absent_keeps_first_record() -> None:
    store = InMemorySessionStore()
    first = await store.put_if_absent(SessionRecord(key="k", session_id="ses-a"))
    second = await store.put_if_absent(SessionRecord(key="k", session_id="ses-b"))

    assert first.session_id == "ses-a"
    assert second.session_id == "ses-a"
    assert await store.get("missing") is None


@pytest.mark.asyncio
async def test_key_locks_are_released_after_creation() -> None:
    backend = FakeBackend()
    backend.create_delay = 0.01
    registry = SessionRegistry(backend)

    await asyncio.gather(*(registry.resolve(f"user-{n}") for n in range(5)))
    await registry.resolve("alice")

    assert len(registry._key_locks) == 0
    assert backend.create_calls == 6

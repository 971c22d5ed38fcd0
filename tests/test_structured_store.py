"""Tests for the SQLite memory store."""

from datetime import datetime, timedelta, timezone

import pytest

from bureau.domain.context.memory.structured_store import SQLiteMemoryStore, to_db_time
from bureau.domain.errors import BackendUnavailableError, DuplicateMemoryError, MemoryNotFoundError
from bureau.domain.models.memory import MemoryEntry, MemoryQuery, MemoryType, TimeRange

BASE = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def entry(memory_id: str, minutes: int = 0, **kwargs) -> MemoryEntry:
    created = BASE + timedelta(minutes=minutes)
    values = dict(
        id=memory_id,
        agent_id="eng-1",
        type=MemoryType.TASK,
        content=f"content {memory_id}",
        created_at=created,
        updated_at=created,
        expires_at=created + timedelta(days=30),
    )
    values.update(kwargs)
    return MemoryEntry(**values)


@pytest.mark.asyncio
async def test_store_and_retrieve_round_trip(store):
    original = entry("m1", metadata={"task_id": "t1"}, tags=["design", "api"])

    await store.store(original)
    loaded = await store.retrieve("m1")

    assert loaded == original


@pytest.mark.asyncio
async def test_store_rejects_duplicate_id(store):
    await store.store(entry("m1"))

    with pytest.raises(DuplicateMemoryError):
        await store.store(entry("m1"))


@pytest.mark.asyncio
async def test_retrieve_missing_raises_not_found(store):
    with pytest.raises(MemoryNotFoundError):
        await store.retrieve("missing")


@pytest.mark.asyncio
async def test_query_orders_newest_first_with_paging(store):
    for i in range(5):
        await store.store(entry(f"m{i}", minutes=i))

    page = await store.query(MemoryQuery(agent_id="eng-1", limit=2, offset=1))

    assert [e.id for e in page] == ["m3", "m2"]


@pytest.mark.asyncio
async def test_query_filters_by_type_content_and_agent(store):
    await store.store(entry("a", content="Build the Login page"))
    await store.store(entry("b", content="login service", type=MemoryType.KNOWLEDGE))
    await store.store(entry("c", content="LOGIN audit", agent_id="eng-2"))

    results = await store.query(MemoryQuery(agent_id="eng-1", type=MemoryType.TASK, content="login"))

    assert [e.id for e in results] == ["a"]


@pytest.mark.asyncio
async def test_query_requires_every_tag(store):
    await store.store(entry("a", tags=["design", "api"]))
    await store.store(entry("b", tags=["design"]))

    results = await store.query(MemoryQuery(tags=["design", "api"]))

    assert [e.id for e in results] == ["a"]


@pytest.mark.asyncio
async def test_query_time_range_is_inclusive(store):
    for i in range(4):
        await store.store(entry(f"m{i}", minutes=i * 10))

    window = TimeRange(start=BASE + timedelta(minutes=10), end=BASE + timedelta(minutes=20))
    results = await store.query(MemoryQuery(time_range=window))

    assert {e.id for e in results} == {"m1", "m2"}


@pytest.mark.asyncio
async def test_update_replaces_entry(store):
    await store.store(entry("m1"))

    changed = entry("m1", content="rewritten", tags=["new"])
    await store.update(changed)

    loaded = await store.retrieve("m1")
    assert loaded.content == "rewritten"
    assert loaded.tags == ["new"]


@pytest.mark.asyncio
async def test_update_and_delete_missing_raise(store):
    with pytest.raises(MemoryNotFoundError):
        await store.update(entry("ghost"))
    with pytest.raises(MemoryNotFoundError):
        await store.delete("ghost")


@pytest.mark.asyncio
async def test_delete_expired_is_idempotent(store):
    now = BASE + timedelta(days=1)
    await store.store(entry("old", expires_at=now - timedelta(hours=1)))
    await store.store(entry("fresh", expires_at=now + timedelta(hours=1)))

    assert await store.list_expired_ids(now) == ["old"]
    assert await store.delete_expired(now) == 1
    assert await store.delete_expired(now) == 0
    assert (await store.retrieve("fresh")).id == "fresh"


@pytest.mark.asyncio
async def test_closed_store_is_unavailable():
    store = SQLiteMemoryStore(":memory:")
    await store.store(entry("m1"))
    await store.close()

    with pytest.raises(BackendUnavailableError):
        await store.retrieve("m1")


@pytest.mark.asyncio
async def test_file_database_persists_across_instances(tmp_path):
    path = str(tmp_path / "memory" / "bureau.db")

    first = SQLiteMemoryStore(path)
    await first.store(entry("m1"))
    await first.close()

    second = SQLiteMemoryStore(path)
    loaded = await second.retrieve("m1")
    await second.close()

    assert loaded.content == "content m1"


def test_db_time_sorts_chronologically():
    earlier = datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
    later = earlier + timedelta(microseconds=1)
    naive = datetime(2024, 1, 1, 0, 0, 0)

    assert to_db_time(earlier) < to_db_time(later)
    assert to_db_time(naive) == to_db_time(earlier)

import json

import pytest

from vetrina.storefront.drafts import INDEX_KEY, DraftCache, InMemoryDraftStorage, RedisDraftStorage, draft_key


class _Clock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, hours: float) -> None:
        self.now += hours * 3600


def _cache(clock: _Clock, ttl_hours: int = 24) -> tuple[DraftCache, InMemoryDraftStorage]:
    storage = InMemoryDraftStorage()
    return DraftCache(storage, ttl_hours=ttl_hours, clock=clock), storage


@pytest.mark.asyncio
async def test_save_writes_entry_and_index() -> None:
    clock = _Clock()
    cache, storage = _cache(clock)

    await cache.save(42, [{"key": "a", "article_code": "AB-12"}])
    await cache.save(42, [{"key": "a", "article_code": "AB-13"}])
    await cache.save(7, [])

    entry = json.loads(storage.items[draft_key(42)])
    assert entry == {"lines": [{"key": "a", "article_code": "AB-13"}], "timestamp": int(clock.now * 1000)}
    assert json.loads(storage.items[INDEX_KEY]) == [42, 7]
    assert await cache.load(42) == [{"key": "a", "article_code": "AB-13"}]


@pytest.mark.asyncio
async def test_expired_draft_is_purged_on_read() -> None:
    clock = _Clock()
    cache, storage = _cache(clock, ttl_hours=24)
    await cache.save(42, [{"key": "a"}])
    await cache.save(43, [{"key": "b"}])

    clock.advance(23)
    assert await cache.load(42) == [{"key": "a"}]

    clock.advance(2)
    await cache.save(43, [{"key": "b2"}])
    assert await cache.modified_order_ids() == [43]
    assert draft_key(42) not in storage.items
    assert json.loads(storage.items[INDEX_KEY]) == [43]


@pytest.mark.asyncio
async def test_clear_removes_entry_and_drops_empty_index() -> None:
    cache, storage = _cache(_Clock())
    await cache.save(42, [{"key": "a"}])

    await cache.clear(42)

    assert storage.items == {}
    assert await cache.load(42) is None
    assert await cache.modified_order_ids() == []


@pytest.mark.asyncio
async def test_unreadable_entry_is_discarded() -> None:
    cache, storage = _cache(_Clock())
    await cache.save(42, [{"key": "a"}])
    storage.items[draft_key(42)] = "{not json"

    assert await cache.load(42) is None
    assert draft_key(42) not in storage.items
    assert INDEX_KEY not in storage.items


@pytest.mark.asyncio
async def test_index_entries_without_draft_are_dropped() -> None:
    cache, storage = _cache(_Clock())
    storage.items[INDEX_KEY] = json.dumps([5, "6", "x"])

    assert await cache.modified_order_ids() == []
    assert INDEX_KEY not in storage.items


class _FakeRedis:
    def __init__(self) -> None:
        self.values: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self.values.get(key)

    async def set(self, key: str, value: str) -> None:
        self.values[key] = value

    async def delete(self, key: str) -> None:
        self.values.pop(key, None)


@pytest.mark.asyncio
async def test_redis_storage_prefixes_keys() -> None:
    redis = _FakeRedis()
    cache = DraftCache(RedisDraftStorage(redis), clock=_Clock())

    await cache.save(42, [{"key": "a"}])

    assert set(redis.values) == {"vetrina:drafts:order_42", "vetrina:drafts:modified_orders_index"}
    assert await cache.load(42) == [{"key": "a"}]

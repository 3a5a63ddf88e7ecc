"""Local draft cache for unsaved order edits.

Layout mirrors the browser storage the order editor has always used: a
``modified_orders_index`` JSON array of order ids plus one ``order_<id>`` entry
holding ``{"lines": [...], "timestamp": <epoch ms>}``. Entries older than the
TTL are purged when they are next touched; nothing sweeps in the background.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Mapping, Protocol, Sequence

_LOGGER = logging.getLogger(__name__)

INDEX_KEY = "modified_orders_index"


def draft_key(order_id: int) -> str:
    return f"order_{order_id}"


class DraftStorage(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...


class InMemoryDraftStorage:
    """Process-local key/value storage, the stand-in for browser localStorage."""

    def __init__(self) -> None:
        self.items: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self.items.get(key)

    async def set(self, key: str, value: str) -> None:
        self.items[key] = value

    async def delete(self, key: str) -> None:
        self.items.pop(key, None)


class RedisDraftStorage:
    """Draft storage shared across storefront workers through Redis."""

    def __init__(self, redis_client: Any, *, prefix: str = "vetrina:drafts") -> None:
        self._redis = redis_client
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    async def get(self, key: str) -> str | None:
        return await self._redis.get(self._key(key))

    async def set(self, key: str, value: str) -> None:
        await self._redis.set(self._key(key), value)

    async def delete(self, key: str) -> None:
        await self._redis.delete(self._key(key))


class DraftCache:
    def __init__(
        self,
        storage: DraftStorage,
        *,
        ttl_hours: int = 24,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.storage = storage
        self.ttl_ms = ttl_hours * 3600 * 1000
        self._clock = clock

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def load(self, order_id: int) -> list[dict[str, Any]] | None:
        """Return the cached lines of an order, or None when absent or expired."""

        raw = await self.storage.get(draft_key(order_id))
        if raw is None:
            await self._remove_from_index(order_id)
            return None
        try:
            entry = json.loads(raw)
            lines = entry["lines"]
            timestamp = int(entry["timestamp"])
        except (ValueError, KeyError, TypeError):
            _LOGGER.warning("Discarding unreadable draft for order %s", order_id)
            await self.clear(order_id)
            return None
        if self._now_ms() - timestamp > self.ttl_ms:
            _LOGGER.info("Draft for order %s expired", order_id)
            await self.clear(order_id)
            return None
        return list(lines)

    async def save(self, order_id: int, lines: Sequence[Mapping[str, Any]]) -> None:
        entry = {"lines": [dict(line) for line in lines], "timestamp": self._now_ms()}
        await self.storage.set(draft_key(order_id), json.dumps(entry, default=str))
        index = await self._read_index()
        if order_id not in index:
            index.append(order_id)
            await self._write_index(index)

    async def clear(self, order_id: int) -> None:
        await self.storage.delete(draft_key(order_id))
        await self._remove_from_index(order_id)

    async def modified_order_ids(self) -> list[int]:
        """Order ids with a live draft; expired entries are purged on the way."""

        live: list[int] = []
        for order_id in await self._read_index():
            if await self.load(order_id) is not None:
                live.append(order_id)
        return live

    async def _read_index(self) -> list[int]:
        raw = await self.storage.get(INDEX_KEY)
        if not raw:
            return []
        try:
            parsed = json.loads(raw)
        except ValueError:
            return []
        if not isinstance(parsed, list):
            return []
        return [int(item) for item in parsed if isinstance(item, int) or (isinstance(item, str) and item.isdigit())]

    async def _write_index(self, index: list[int]) -> None:
        if index:
            await self.storage.set(INDEX_KEY, json.dumps(index))
        else:
            await self.storage.delete(INDEX_KEY)

    async def _remove_from_index(self, order_id: int) -> None:
        index = await self._read_index()
        if order_id in index:
            index.remove(order_id)
            await self._write_index(index)

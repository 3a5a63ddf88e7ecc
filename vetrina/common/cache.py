"""Async Redis helpers used for draft storage and real-time push."""

from __future__ import annotations

from redis.asyncio import Redis

from .config import ServiceSettings


_CLIENTS: dict[str, Redis] = {}


def get_redis_client(redis_url: str) -> Redis:
    """Return a cached Redis client for the given URL."""

    if redis_url not in _CLIENTS:
        _CLIENTS[redis_url] = Redis.from_url(redis_url, decode_responses=True)
    return _CLIENTS[redis_url]


def resolve_redis(settings: ServiceSettings) -> Redis | None:
    """Return a Redis client, or None when no ``redis_url`` is configured."""

    if not settings.redis_url:
        return None
    return get_redis_client(settings.redis_url)


async def close_redis_connections() -> None:
    """Close every cached Redis client (shutdown and tests)."""

    for client in _CLIENTS.values():
        await client.aclose()
    _CLIENTS.clear()

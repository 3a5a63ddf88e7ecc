"""Real-time delivery channels pushing notifications to per-user rooms."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, List, Protocol

NOTIFICATION_EVENT = "notification"


def user_room(user_id: int) -> str:
    return f"user-{user_id}"


class RealtimeChannel(Protocol):
    name: str

    async def publish(self, room: str, event: str, payload: dict[str, Any]) -> None: ...


@dataclass(slots=True)
class PushedMessage:
    room: str
    event: str
    payload: dict[str, Any]


class InMemoryRealtimeChannel:
    """Keeps pushed messages for inspection; used when no Redis is configured."""

    name = "memory"

    def __init__(self) -> None:
        self.sent: List[PushedMessage] = []

    async def publish(self, room: str, event: str, payload: dict[str, Any]) -> None:
        self.sent.append(PushedMessage(room=room, event=event, payload=payload))

    def for_room(self, room: str) -> list[PushedMessage]:
        return [message for message in self.sent if message.room == room]


class RedisRealtimeChannel:
    """Publishes ``{"event", "data"}`` JSON frames on a Redis pub/sub channel per room.

    The socket gateway subscribes to ``<prefix>:<room>`` and relays frames to
    the browser sessions joined to that room.
    """

    name = "redis"

    def __init__(self, redis_client: Any, *, prefix: str = "vetrina:realtime") -> None:
        self._redis = redis_client
        self._prefix = prefix

    def channel_for(self, room: str) -> str:
        return f"{self._prefix}:{room}"

    async def publish(self, room: str, event: str, payload: dict[str, Any]) -> None:
        frame = json.dumps({"event": event, "data": payload}, default=str)
        await self._redis.publish(self.channel_for(room), frame)

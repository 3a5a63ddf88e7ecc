"""In-process publish/subscribe bus carrying domain events between services."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Final, Sequence

from prometheus_client import Counter

_LOGGER = logging.getLogger(__name__)

EVENT_HANDLER_FAILURES_TOTAL: Final = Counter(
    "event_bus_handler_failures_total",
    "Subscriber handlers that raised while processing an event.",
    labelnames=("topic",),
)

Handler = Callable[[dict[str, Any]], Awaitable[None]]


class _InMemoryBroker:
    """Topic -> handlers registry shared by every producer and consumer in the process."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Handler]] = defaultdict(list)

    def subscribe(self, topic: str, handler: Handler) -> None:
        self._subscribers[topic].append(handler)

    def unsubscribe(self, topic: str, handler: Handler) -> None:
        handlers = self._subscribers.get(topic)
        if handlers and handler in handlers:
            handlers.remove(handler)
            if not handlers:
                self._subscribers.pop(topic, None)

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, []))

    async def publish(self, topic: str, message: dict[str, Any]) -> int:
        delivered = 0
        # Handlers may unsubscribe while we iterate.
        for handler in list(self._subscribers.get(topic, [])):
            try:
                await handler(message)
            except Exception:
                EVENT_HANDLER_FAILURES_TOTAL.labels(topic=topic).inc()
                _LOGGER.exception("Subscriber of %s failed", topic)
                continue
            delivered += 1
        return delivered


_BROKER = _InMemoryBroker()


class EventProducer:
    """Publishes domain events on the shared broker."""

    def __init__(self, *, source: str) -> None:
        self._source = source
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self._connected = True

    async def send(self, topic: str, value: dict[str, Any]) -> int:
        """Deliver ``value`` to every subscriber of ``topic`` and return how many handled it.

        A failing subscriber is logged and counted; it never fails the sender.
        """

        if not self._connected:
            raise RuntimeError("Producer not connected")
        delivered = await _BROKER.publish(topic, {"source": self._source, **value})
        if delivered == 0:
            _LOGGER.debug("No subscribers for %s (source=%s)", topic, self._source)
        return delivered

    async def close(self) -> None:
        self._connected = False


class EventConsumer:
    """Subscribes a ``handler(topic, message)`` coroutine to a fixed set of topics."""

    def __init__(
        self,
        topics: Sequence[str],
        handler: Callable[[str, dict[str, Any]], Awaitable[None]],
    ) -> None:
        self._topics = list(topics)
        self._handler = handler
        self._registrations: list[tuple[str, Handler]] = []
        self._started = False

    async def start(self) -> None:
        if self._started:
            return
        for topic in self._topics:
            async def _callback(message: dict[str, Any], current_topic: str = topic) -> None:
                await self._handler(current_topic, message)

            _BROKER.subscribe(topic, _callback)
            self._registrations.append((topic, _callback))
        self._started = True

    async def stop(self) -> None:
        if not self._started:
            return
        for topic, callback in self._registrations:
            _BROKER.unsubscribe(topic, callback)
        self._registrations.clear()
        self._started = False

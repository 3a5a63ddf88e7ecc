from typing import Any

import pytest
from prometheus_client import REGISTRY

from vetrina.common import EventConsumer, EventProducer
from vetrina.common.bus import _BROKER


@pytest.mark.asyncio
async def test_consumer_receives_events_until_stopped() -> None:
    received: list[tuple[str, dict[str, Any]]] = []

    async def handler(topic: str, message: dict[str, Any]) -> None:
        received.append((topic, message))

    consumer = EventConsumer(["bus.test.a.v1", "bus.test.b.v1"], handler)
    producer = EventProducer(source="Bus Test")
    await consumer.start()
    await consumer.start()
    await producer.connect()
    try:
        assert _BROKER.subscriber_count("bus.test.a.v1") == 1
        assert await producer.send("bus.test.a.v1", {"id": 1}) == 1
        assert await producer.send("bus.test.b.v1", {"id": 2}) == 1
        assert await producer.send("bus.test.unused.v1", {"id": 3}) == 0
    finally:
        await consumer.stop()

    assert await producer.send("bus.test.a.v1", {"id": 4}) == 0
    assert _BROKER.subscriber_count("bus.test.a.v1") == 0
    assert received == [
        ("bus.test.a.v1", {"source": "Bus Test", "id": 1}),
        ("bus.test.b.v1", {"source": "Bus Test", "id": 2}),
    ]


@pytest.mark.asyncio
async def test_producer_must_be_connected() -> None:
    producer = EventProducer(source="Bus Test")
    assert producer.connected is False
    with pytest.raises(RuntimeError):
        await producer.send("bus.test.a.v1", {})

    await producer.connect()
    await producer.close()
    assert producer.connected is False


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_reach_sender() -> None:
    received: list[dict[str, Any]] = []

    async def broken(topic: str, message: dict[str, Any]) -> None:
        raise RuntimeError("notification store down")

    async def healthy(topic: str, message: dict[str, Any]) -> None:
        received.append(message)

    labels = {"topic": "bus.test.failing.v1"}
    baseline = REGISTRY.get_sample_value("event_bus_handler_failures_total", labels) or 0.0
    consumers = [EventConsumer(["bus.test.failing.v1"], broken), EventConsumer(["bus.test.failing.v1"], healthy)]
    producer = EventProducer(source="Bus Test")
    await producer.connect()
    for consumer in consumers:
        await consumer.start()
    try:
        assert await producer.send("bus.test.failing.v1", {"id": 5}) == 1
    finally:
        for consumer in consumers:
            await consumer.stop()

    assert received == [{"source": "Bus Test", "id": 5}]
    assert (REGISTRY.get_sample_value("event_bus_handler_failures_total", labels) or 0.0) - baseline == 1

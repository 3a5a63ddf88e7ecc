import json
from datetime import datetime, timezone
from typing import Any

import pytest
from prometheus_client import REGISTRY
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from vetrina.common import create_schema, dispose_engines, get_session_factory
from vetrina.notification_service.app.channels import InMemoryRealtimeChannel, RedisRealtimeChannel
from vetrina.notification_service.app.event_handlers import NotificationEventHandler, catalog_message
from vetrina.notification_service.app.models import Base, Notification
from vetrina.notification_service.app.repository import NotificationRepository
from vetrina.notification_service.app.schemas import NotificationCreate
from vetrina.notification_service.app.services import NotificationDispatcher


class _MetricTracker:
    def __init__(self, name: str, labels: dict[str, str] | None = None) -> None:
        self.name = name
        self.labels = labels or {}
        baseline = REGISTRY.get_sample_value(name, self.labels)
        self._baseline = baseline if baseline is not None else 0.0

    def delta(self) -> float:
        current = REGISTRY.get_sample_value(self.name, self.labels)
        value = current if current is not None else 0.0
        return value - self._baseline


class _RecordingRepository:
    """Keeps created notifications in memory."""

    def __init__(self) -> None:
        self.rows: list[Notification] = []
        self.commits = 0
        self.fail_commit = False

    async def create_notification(self, **fields: Any) -> Notification:
        notification = Notification(
            id=len(self.rows) + 1,
            read=False,
            created_at=datetime.now(timezone.utc),
            **fields,
        )
        self.rows.append(notification)
        return notification

    async def commit(self) -> None:
        if self.fail_commit:
            raise OperationalError("COMMIT", {}, Exception("database is locked"))
        self.commits += 1


class _BrokenChannel:
    name = "broken"

    async def publish(self, room: str, event: str, payload: dict[str, Any]) -> None:
        raise ConnectionError("socket gateway unreachable")


def _payload(**overrides: Any) -> NotificationCreate:
    data = {"type": "SYSTEM", "icon": "Info", "color": "gray", "message": "Maintenance tonight"}
    data.update(overrides)
    return NotificationCreate(**data)


@pytest.mark.parametrize(
    ("catalog_type", "season", "year", "expected"),
    [
        ("Preordine", "FALL-WINTER", 2025, "Acme FW25 Preorders Open Now!"),
        ("Preordine", "PRE SPRING-SUMMER", 2026, "Acme PRE SS26 Preorders Open Now!"),
        ("Disponibile", "FALL-WINTER", 2025, "New List Acme Available Now!"),
        ("Outlet", "SPRING-SUMMER", 2024, "New List Acme Outlet Available Now!"),
    ],
)
def test_catalog_message_formats(catalog_type: str, season: str, year: int, expected: str) -> None:
    assert catalog_message(brand_name="Acme", catalog_type=catalog_type, season=season, year=year) == expected


@pytest.mark.asyncio
async def test_dispatch_stores_row_when_push_fails() -> None:
    repository = _RecordingRepository()
    dispatcher = NotificationDispatcher(repository, _BrokenChannel())  # type: ignore[arg-type]
    failures = _MetricTracker("notification_push_failure_total", {"channel": "broken"})

    notification = await dispatcher.dispatch(7, _payload())
    assert await dispatcher.commit() == 0

    assert repository.rows == [notification]
    assert repository.commits == 1
    assert notification.user_id == 7
    assert failures.delta() == 1


@pytest.mark.asyncio
async def test_dispatch_pushes_camel_case_frame() -> None:
    repository = _RecordingRepository()
    channel = InMemoryRealtimeChannel()
    dispatcher = NotificationDispatcher(repository, channel)  # type: ignore[arg-type]
    pushes = _MetricTracker("notification_push_total", {"channel": "memory"})

    await dispatcher.dispatch(7, _payload(brandName="Acme"))
    assert channel.for_room("user-7") == []
    assert await dispatcher.commit() == 1

    [message] = channel.for_room("user-7")
    assert message.event == "notification"
    assert message.payload["brandName"] == "Acme"
    assert message.payload["read"] is False
    assert isinstance(message.payload["createdAt"], str)
    assert pushes.delta() == 1


@pytest.mark.asyncio
async def test_event_handler_creates_notifications(tmp_path) -> None:
    database_url = f"sqlite+aiosqlite:///{tmp_path / 'events.db'}"
    await create_schema(database_url, Base.metadata)
    channel = InMemoryRealtimeChannel()
    handler = NotificationEventHandler(get_session_factory(database_url), channel=channel)
    processed = _MetricTracker("notification_events_processed_total", {"topic": "catalog.published.v1"})
    dropped = _MetricTracker(
        "notification_events_dropped_total", {"topic": "catalog.published.v1", "reason": "no_recipient"}
    )

    try:
        await handler.handle(
            "catalog.published.v1",
            {
                "catalog": {
                    "id": 3,
                    "brandId": "ACME",
                    "brandName": "Acme",
                    "catalogType": "Preordine",
                    "season": "FALL-WINTER",
                    "year": 2025,
                },
                "recipients": [7, "8", None],
            },
        )
        await handler.handle(
            "catalog.published.v1",
            {"catalog": {"brandName": "Acme", "catalogType": "Disponibile"}, "recipients": []},
        )
        await handler.handle(
            "order.status.changed.v1",
            {"order": {"id": 42, "orderNumber": "ORD42", "status": "submitted", "userId": 7, "brandName": "Acme"}},
        )
        await handler.handle("order.status.changed.v1", {"order": {"id": 42, "status": "draft"}})

        async with get_session_factory(database_url)() as session:
            rows = list((await session.execute(select(Notification).order_by(Notification.id))).scalars())
    finally:
        await dispose_engines()

    assert [(row.user_id, row.type, row.message) for row in rows] == [
        (7, "CATALOG_ADDED", "Acme FW25 Preorders Open Now!"),
        (8, "CATALOG_ADDED", "Acme FW25 Preorders Open Now!"),
        (7, "ORDER_STATUS", "Order ORD42 submitted"),
    ]
    assert rows[2].color == "green"
    assert rows[0].icon == "BookOpenCheck"
    assert len(channel.for_room("user-7")) == 2
    assert processed.delta() == 1
    assert dropped.delta() == 1


class _FakeRedisPublisher:
    def __init__(self) -> None:
        self.published: list[tuple[str, str]] = []

    async def publish(self, channel: str, message: str) -> int:
        self.published.append((channel, message))
        return 1


@pytest.mark.asyncio
async def test_redis_channel_publishes_event_frames() -> None:
    redis = _FakeRedisPublisher()
    dispatcher = NotificationDispatcher(_RecordingRepository(), RedisRealtimeChannel(redis))  # type: ignore[arg-type]

    notification = await dispatcher.dispatch(9, _payload())
    await dispatcher.commit()

    [(channel, frame)] = redis.published
    assert channel == "vetrina:realtime:user-9"
    decoded = json.loads(frame)
    assert decoded["event"] == "notification"
    assert decoded["data"]["id"] == notification.id
    assert decoded["data"]["message"] == "Maintenance tonight"


@pytest.mark.asyncio
async def test_failed_commit_pushes_nothing() -> None:
    repository = _RecordingRepository()
    repository.fail_commit = True
    channel = InMemoryRealtimeChannel()
    dispatcher = NotificationDispatcher(repository, channel)  # type: ignore[arg-type]

    await dispatcher.dispatch(7, _payload())
    with pytest.raises(OperationalError):
        await dispatcher.commit()

    assert channel.for_room("user-7") == []


@pytest.mark.asyncio
async def test_event_failing_midway_rolls_back_without_pushes(tmp_path, monkeypatch) -> None:
    database_url = f"sqlite+aiosqlite:///{tmp_path / 'partial.db'}"
    await create_schema(database_url, Base.metadata)
    channel = InMemoryRealtimeChannel()
    handler = NotificationEventHandler(get_session_factory(database_url), channel=channel)
    original_create = NotificationRepository.create_notification

    async def create_then_fail(self, **fields: Any) -> Notification:
        if fields["user_id"] == 8:
            raise OperationalError("INSERT", {}, Exception("disk I/O error"))
        return await original_create(self, **fields)

    monkeypatch.setattr(NotificationRepository, "create_notification", create_then_fail)

    try:
        with pytest.raises(OperationalError):
            await handler.handle(
                "catalog.published.v1",
                {
                    "catalog": {"brandId": "ACME", "brandName": "Acme", "catalogType": "Disponibile"},
                    "recipients": [7, 8],
                },
            )
        async with get_session_factory(database_url)() as session:
            rows = list((await session.execute(select(Notification))).scalars())
    finally:
        await dispose_engines()

    assert rows == []
    assert channel.for_room("user-7") == []
    assert channel.for_room("user-8") == []

import asyncio
from contextlib import asynccontextmanager

import httpx
import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from prometheus_client import REGISTRY

from vetrina.common import ServiceSettings, dispose_engines
from vetrina.notification_service.app.main import create_app
from vetrina.storefront.client import NotificationClient, ServiceAPIError
from vetrina.storefront.factory import build_notification_bell
from vetrina.storefront.notifications import NotificationBell


def _run(coro):
    return asyncio.run(coro)


class _FlakyNotificationClient:
    def __init__(self, counts: list[int | None]) -> None:
        self.counts = counts
        self.calls = 0

    async def unread_count(self) -> int:
        self.calls += 1
        value = self.counts[min(self.calls, len(self.counts)) - 1]
        if value is None:
            raise ServiceAPIError(503, "Service unavailable")
        return value


def test_bell_follows_notification_service(tmp_path) -> None:
    settings = ServiceSettings(
        app_name="Notification Service Test",
        enable_metrics=False,
        enable_tracing=False,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'notifications.db'}",
    )
    app = create_app(settings)
    changes: list[int] = []

    async def _record(count: int) -> None:
        changes.append(count)

    async def body() -> None:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as http_client:
                bell = build_notification_bell(settings, user_id=7, http_client=http_client, on_change=_record)
                assert await bell.refresh() == 0

                for message in ("First", "Second"):
                    created = await http_client.post(
                        "/notifications",
                        json={"type": "SYSTEM", "icon": "Info", "color": "gray", "message": message},
                        headers={"Cookie": "session=7"},
                    )
                    assert created.status_code == 200
                assert await bell.refresh() == 2
                assert await bell.refresh() == 2

                notifications = await bell.open()
                assert [item["message"] for item in notifications] == ["Second", "First"]
                assert bell.pagination == {"total": 2, "pages": 1, "current": 1}

                await bell.mark_read(notifications[0]["id"])
                assert bell.notifications[0]["read"] is True
                assert bell.unread == 1

    _run(body())
    _run(dispose_engines())
    assert changes == [0, 2, 1]


@pytest.mark.asyncio
async def test_push_frames_update_badge_without_duplicates() -> None:
    bell = NotificationBell(_FlakyNotificationClient([3]))  # type: ignore[arg-type]
    await bell.refresh()

    frame = {"id": 10, "message": "New List Acme Available Now!", "read": False}
    await bell.receive_push(frame)
    await bell.receive_push(frame)

    assert bell.unread == 4
    assert bell.notifications == [frame]


@pytest.mark.asyncio
async def test_poll_loop_survives_failures_until_stopped() -> None:
    client = _FlakyNotificationClient([1, None, 5])
    seen: list[int] = []

    async def _record(count: int) -> None:
        seen.append(count)
        if count == 5:
            stop.set()

    stop = asyncio.Event()
    bell = NotificationBell(client, interval_seconds=0.01, on_change=_record)  # type: ignore[arg-type]

    await asyncio.wait_for(bell.run(stop), timeout=2)

    assert seen == [1, 5]
    assert client.calls == 3
    assert bell.unread == 5


@pytest.mark.asyncio
async def test_poll_loop_keeps_running_while_service_is_unreachable() -> None:
    attempts = 0

    def _handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        if attempts < 3:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"count": 4})

    failures_before = REGISTRY.get_sample_value("storefront_notification_poll_failures_total") or 0.0
    stop = asyncio.Event()
    seen: list[int] = []

    async def _record(count: int) -> None:
        seen.append(count)
        stop.set()

    http_client = AsyncClient(transport=httpx.MockTransport(_handler), base_url="http://notifications")
    client = NotificationClient(client=http_client, user_id=7)
    bell = NotificationBell(client, interval_seconds=0.01, on_change=_record)
    try:
        await asyncio.wait_for(bell.run(stop), timeout=2)
    finally:
        await client.close()

    assert seen == [4]
    assert attempts == 3
    failures_after = REGISTRY.get_sample_value("storefront_notification_poll_failures_total") or 0.0
    assert failures_after - failures_before == 2


@pytest.mark.asyncio
async def test_unreachable_service_raises_service_error() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    client = NotificationClient(
        client=AsyncClient(transport=httpx.MockTransport(_handler), base_url="http://notifications"),
        user_id=7,
    )
    try:
        with pytest.raises(ServiceAPIError) as excinfo:
            await client.unread_count()
    finally:
        await client.close()

    assert excinfo.value.status_code == 503
    assert excinfo.value.message == "timed out"


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with app.router.lifespan_context(app):
        yield

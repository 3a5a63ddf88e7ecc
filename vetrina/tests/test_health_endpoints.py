from collections.abc import Callable
from contextlib import asynccontextmanager

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from vetrina.common import ServiceSettings, dispose_engines
from vetrina.notification_service.app.main import create_app as create_notification_app
from vetrina.ordering_service.app.main import create_app as create_ordering_app


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("app_factory", "service_name"),
    [
        (create_ordering_app, "Ordering Service"),
        (create_notification_app, "Notification Service"),
    ],
)
async def test_health_and_readiness(
    app_factory: Callable[[ServiceSettings], FastAPI], service_name: str, tmp_path
) -> None:
    settings = ServiceSettings(
        enable_metrics=False,
        enable_tracing=False,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'health.db'}",
    )
    app = app_factory(settings)

    try:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                health = await client.get("/health")
                ready = await client.get("/health/ready")
                missing = await client.get("/does-not-exist")
    finally:
        await dispose_engines()

    assert health.status_code == 200
    assert health.json() == {"status": "ok", "service": service_name}
    assert ready.status_code == 200
    assert missing.status_code == 404
    assert missing.json() == {"error": "Not Found"}


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with app.router.lifespan_context(app):
        yield

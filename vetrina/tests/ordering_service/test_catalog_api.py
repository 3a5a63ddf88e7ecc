import asyncio
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from prometheus_client import REGISTRY
from sqlalchemy.exc import OperationalError

from vetrina.common import ServiceSettings, dispose_engines, lifespan_session
from vetrina.notification_service.app.main import create_app as create_notification_app
from vetrina.notification_service.app.repository import NotificationRepository
from vetrina.ordering_service.app.main import create_app
from vetrina.ordering_service.app.repository import CatalogRepository


def _run(coro):
    return asyncio.run(coro)


def _settings(tmp_path, name: str) -> ServiceSettings:
    return ServiceSettings(
        app_name=f"{name} Test",
        enable_metrics=False,
        enable_tracing=False,
        database_url=f"sqlite+aiosqlite:///{tmp_path / (name.lower() + '.db')}",
    )


async def _seed_clients(app: FastAPI) -> None:
    async with lifespan_session(app.state.session_factory) as session:
        catalogs = CatalogRepository(session)
        await catalogs.create_brand(brand_id="ACME", name="Acme", logo_url=None)
        await catalogs.create_brand(brand_id="GLOBEX", name="Globex", logo_url=None)
        await catalogs.create_client(user_id=7, company_name="Rossi Srl", status="active", brand_ids=["ACME"])
        await catalogs.create_client(user_id=8, company_name="Bianchi Spa", status="pending", brand_ids=["ACME"])
        await catalogs.create_client(user_id=9, company_name="Verdi Snc", status="active", brand_ids=["GLOBEX"])


def _catalog_payload(**overrides: Any) -> dict[str, Any]:
    payload = {
        "code": "acme-fw25",
        "name": "Acme Fall Winter",
        "brand_id": "ACME",
        "catalog_type": "Preordine",
        "season": "fall-winter",
        "year": 2025,
        "order_start_date": "2025-01-10",
        "order_end_date": "2025-02-28",
    }
    payload.update(overrides)
    return payload


def test_create_catalog_validation(tmp_path) -> None:
    app = create_app(_settings(tmp_path, "Ordering"))

    async def body() -> None:
        async with lifespan(app):
            await _seed_clients(app)
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                created = await client.post("/catalogs", json=_catalog_payload())
                assert created.status_code == 201
                catalog = created.json()
                assert catalog["code"] == "ACME-FW25"
                assert catalog["season"] == "FALL-WINTER"
                assert catalog["status"] == "draft"
                assert catalog["brand_name"] == "Acme"

                duplicate = await client.post("/catalogs", json=_catalog_payload())
                assert duplicate.status_code == 400
                assert duplicate.json() == {"error": "Catalog code already exists"}

                unknown_brand = await client.post("/catalogs", json=_catalog_payload(code="X1", brand_id="NOPE"))
                assert unknown_brand.status_code == 404

                reversed_window = await client.post(
                    "/catalogs",
                    json=_catalog_payload(code="X2", order_start_date="2025-03-01", order_end_date="2025-02-01"),
                )
                assert reversed_window.status_code == 400

                detail = await client.get(f"/catalogs/{catalog['id']}")
                assert detail.status_code == 200
                missing = await client.get("/catalogs/999")
                assert missing.status_code == 404

    _run(body())
    _run(dispose_engines())


def test_catalog_status_transitions(tmp_path) -> None:
    app = create_app(_settings(tmp_path, "Ordering"))

    async def body() -> None:
        async with lifespan(app):
            await _seed_clients(app)
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                catalog_id = (await client.post("/catalogs", json=_catalog_payload())).json()["id"]

                client.cookies.set("session", "7")
                assert (await client.get("/catalogs")).json() == []

                published = await client.patch(f"/catalogs/{catalog_id}/status", json={"status": "published"})
                assert published.status_code == 200
                assert published.json()["status"] == "published"

                visible = (await client.get("/catalogs")).json()
                assert [entry["id"] for entry in visible] == [catalog_id]

                client.cookies.set("session", "9")
                assert (await client.get("/catalogs")).json() == []

                again = await client.patch(f"/catalogs/{catalog_id}/status", json={"status": "published"})
                assert again.status_code == 200

                back_to_draft = await client.patch(f"/catalogs/{catalog_id}/status", json={"status": "draft"})
                assert back_to_draft.status_code == 400
                assert back_to_draft.json() == {"error": "Cannot move from published to draft"}

                archived = await client.patch(f"/catalogs/{catalog_id}/status", json={"status": "archived"})
                assert archived.json()["status"] == "archived"

                reopened = await client.patch(f"/catalogs/{catalog_id}/status", json={"status": "published"})
                assert reopened.status_code == 400

                bogus = await client.patch(f"/catalogs/{catalog_id}/status", json={"status": "deleted"})
                assert bogus.status_code == 400
                assert bogus.json()["error"] == "Invalid payload"

    _run(body())
    _run(dispose_engines())


def test_catalog_list_requires_known_client(tmp_path) -> None:
    app = create_app(_settings(tmp_path, "Ordering"))

    async def body() -> None:
        async with lifespan(app):
            await _seed_clients(app)
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                anonymous = await client.get("/catalogs")
                assert anonymous.status_code == 401

                client.cookies.set("session", "abc")
                malformed = await client.get("/catalogs")
                assert malformed.status_code == 400
                assert malformed.json() == {"error": "Invalid user id"}

                client.cookies.set("session", "404")
                unknown = await client.get("/catalogs")
                assert unknown.status_code == 404
                assert unknown.json() == {"error": "Client not found"}

    _run(body())
    _run(dispose_engines())


def test_publishing_and_order_status_notify_clients(tmp_path) -> None:
    notifications_app = create_notification_app(_settings(tmp_path, "Notification"))
    ordering_app = create_app(_settings(tmp_path, "Ordering"))

    async def body() -> None:
        async with lifespan(notifications_app), lifespan(ordering_app):
            await _seed_clients(ordering_app)
            ordering = AsyncClient(transport=ASGITransport(app=ordering_app), base_url="http://test")
            notifications = AsyncClient(transport=ASGITransport(app=notifications_app), base_url="http://test")
            async with ordering, notifications:
                catalog_id = (await ordering.post("/catalogs", json=_catalog_payload())).json()["id"]
                await ordering.patch(f"/catalogs/{catalog_id}/status", json={"status": "published"})

                notifications.cookies.set("session", "7")
                listing = (await notifications.get("/notifications")).json()
                assert listing["pagination"] == {"total": 1, "pages": 1, "current": 1}
                announced = listing["notifications"][0]
                assert announced["type"] == "CATALOG_ADDED"
                assert announced["message"] == "Acme FW25 Preorders Open Now!"
                assert announced["brandId"] == "ACME"
                assert announced["read"] is False

                for other_user in ("8", "9"):
                    notifications.cookies.set("session", other_user)
                    assert (await notifications.get("/notifications/unread-count")).json() == {"count": 0}

                ordering.cookies.set("session", "7")
                order = (await ordering.post("/orders", json={"catalog_id": catalog_id})).json()
                assert order["order_type"] == "Preordine"
                submitted = await ordering.patch(f"/orders/{order['id']}/status", json={"status": "submitted"})
                assert submitted.status_code == 200

                notifications.cookies.set("session", "7")
                latest = (await notifications.get("/notifications")).json()["notifications"]
                messages = {entry["message"]: entry for entry in latest}
                status_entry = messages[f"Order {order['order_number']} submitted"]
                assert status_entry["type"] == "ORDER_STATUS"
                assert status_entry["color"] == "green"

                pushed = notifications_app.state.realtime_channel.for_room("user-7")
                assert len(pushed) == 2
                assert pushed[0].event == "notification"

    _run(body())
    _run(dispose_engines())


def test_publish_survives_notification_failure(tmp_path, monkeypatch) -> None:
    notifications_app = create_notification_app(_settings(tmp_path, "Notification"))
    ordering_app = create_app(_settings(tmp_path, "Ordering"))

    async def failing_create(self, **fields: Any) -> None:
        raise OperationalError("INSERT", {}, Exception("database is locked"))

    monkeypatch.setattr(NotificationRepository, "create_notification", failing_create)
    failures = REGISTRY.get_sample_value("event_bus_handler_failures_total", {"topic": "catalog.published.v1"}) or 0.0

    async def body() -> None:
        async with lifespan(notifications_app), lifespan(ordering_app):
            await _seed_clients(ordering_app)
            ordering = AsyncClient(transport=ASGITransport(app=ordering_app), base_url="http://test")
            notifications = AsyncClient(transport=ASGITransport(app=notifications_app), base_url="http://test")
            async with ordering, notifications:
                catalog_id = (await ordering.post("/catalogs", json=_catalog_payload())).json()["id"]
                published = await ordering.patch(f"/catalogs/{catalog_id}/status", json={"status": "published"})
                assert published.status_code == 200
                assert published.json()["status"] == "published"

                stored = (await ordering.get(f"/catalogs/{catalog_id}")).json()
                assert stored["status"] == "published"

                notifications.cookies.set("session", "7")
                assert (await notifications.get("/notifications/unread-count")).json() == {"count": 0}
                assert notifications_app.state.realtime_channel.for_room("user-7") == []

    _run(body())
    _run(dispose_engines())
    after = REGISTRY.get_sample_value("event_bus_handler_failures_total", {"topic": "catalog.published.v1"}) or 0.0
    assert after - failures == 1


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with app.router.lifespan_context(app):
        yield

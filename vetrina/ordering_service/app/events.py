"""Domain events emitted by the ordering service."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Sequence

from vetrina.common.bus import EventProducer

from .models import Catalog, Order

CATALOG_PUBLISHED_TOPIC = "catalog.published.v1"
ORDER_STATUS_CHANGED_TOPIC = "order.status.changed.v1"


class OrderingEventPublisher:
    """Publishes catalog and order lifecycle events."""

    def __init__(self, producer: EventProducer | None) -> None:
        self._producer = producer

    async def _emit(self, topic: str, payload: dict[str, Any]) -> None:
        if self._producer is None:
            return
        envelope = {
            "eventType": topic,
            "occurredAt": datetime.now(timezone.utc).isoformat(),
            **payload,
        }
        await self._producer.send(topic, envelope)

    async def catalog_published(self, catalog: Catalog, *, recipients: Sequence[int]) -> None:
        await self._emit(
            CATALOG_PUBLISHED_TOPIC,
            {
                "catalog": {
                    "id": catalog.id,
                    "code": catalog.code,
                    "name": catalog.name,
                    "brandId": catalog.brand_id,
                    "brandName": catalog.brand.name,
                    "catalogType": catalog.catalog_type,
                    "season": catalog.season,
                    "year": catalog.year,
                },
                "recipients": list(recipients),
            },
        )

    async def order_status_changed(self, order: Order, *, previous_status: str) -> None:
        await self._emit(
            ORDER_STATUS_CHANGED_TOPIC,
            {
                "order": {
                    "id": order.id,
                    "orderNumber": order.order_number,
                    "status": order.status,
                    "previousStatus": previous_status,
                    "clientId": order.client_id,
                    "userId": order.client.user_id,
                    "catalogId": order.catalog_id,
                    "brandId": order.catalog.brand_id,
                    "brandName": order.catalog.brand.name,
                },
            },
        )

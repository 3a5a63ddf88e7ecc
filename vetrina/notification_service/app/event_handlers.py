"""Background event handlers turning domain events into user notifications."""

from __future__ import annotations

import logging
from typing import Any, Sequence

from sqlalchemy.ext.asyncio import async_sessionmaker

from vetrina.common import lifespan_session

from .channels import RealtimeChannel
from .metrics import (
    NOTIFICATION_EVENTS_DROPPED_TOTAL,
    NOTIFICATION_EVENTS_PROCESSED_TOTAL,
    normalise_event_reason,
)
from .repository import NotificationRepository
from .schemas import NotificationCreate
from .services import NotificationDispatcher

_LOGGER = logging.getLogger(__name__)

CATALOG_PUBLISHED_TOPIC = "catalog.published.v1"
ORDER_STATUS_CHANGED_TOPIC = "order.status.changed.v1"
TOPICS: tuple[str, ...] = (CATALOG_PUBLISHED_TOPIC, ORDER_STATUS_CHANGED_TOPIC)

_ORDER_STATUS_LABELS = {
    "draft": "back to draft",
    "submitted": "submitted",
}


def _parse_user_id(raw: Any) -> int | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    return None


def _season_code(season: str) -> str:
    upper = season.upper()
    if "FALL-WINTER" in upper:
        return "FW"
    if "SPRING-SUMMER" in upper:
        return "SS"
    return ""


def catalog_message(*, brand_name: str, catalog_type: str, season: str, year: int | str) -> str:
    """Headline announcing a newly published catalog, e.g. ``Acme PRE FW25 Preorders Open Now!``."""

    if catalog_type == "Preordine":
        pre_prefix = "PRE " if "PRE" in season.upper() else ""
        return f"{brand_name} {pre_prefix}{_season_code(season)}{str(year)[-2:]} Preorders Open Now!"
    if catalog_type == "Disponibile":
        return f"New List {brand_name} Available Now!"
    return f"New List {brand_name} {catalog_type} Available Now!"


class NotificationEventHandler:
    """Consumes ordering events and dispatches per-user notifications."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        *,
        channel: RealtimeChannel | None,
    ) -> None:
        self._session_factory = session_factory
        self._channel = channel

    async def handle(self, topic: str, payload: dict[str, Any]) -> None:
        processed = False
        outcome = "unsupported_topic"
        if topic == CATALOG_PUBLISHED_TOPIC:
            processed, outcome = await self._handle_catalog_published(payload)
        elif topic == ORDER_STATUS_CHANGED_TOPIC:
            processed, outcome = await self._handle_order_status(payload)

        reason = normalise_event_reason(outcome)
        if processed:
            NOTIFICATION_EVENTS_PROCESSED_TOTAL.labels(topic=topic).inc()
        else:
            NOTIFICATION_EVENTS_DROPPED_TOTAL.labels(topic=topic, reason=reason).inc()
            _LOGGER.info("Dropped %s event: %s", topic, reason)

    async def _handle_catalog_published(self, payload: dict[str, Any]) -> tuple[bool, str]:
        catalog = payload.get("catalog")
        if not isinstance(catalog, dict) or not catalog.get("brandName"):
            return False, "invalid_payload"

        raw_recipients = payload.get("recipients")
        recipients = [
            user_id
            for user_id in (_parse_user_id(raw) for raw in (raw_recipients if isinstance(raw_recipients, list) else []))
            if user_id is not None
        ]
        if not recipients:
            return False, "no_recipient"

        notification = NotificationCreate(
            type="CATALOG_ADDED",
            icon="BookOpenCheck",
            color="blue",
            brand_id=catalog.get("brandId"),
            brand_name=catalog.get("brandName"),
            message=catalog_message(
                brand_name=str(catalog["brandName"]),
                catalog_type=str(catalog.get("catalogType") or ""),
                season=str(catalog.get("season") or ""),
                year=catalog.get("year") or "",
            ),
        )
        await self._dispatch_all(recipients, notification)
        return True, "processed"

    async def _handle_order_status(self, payload: dict[str, Any]) -> tuple[bool, str]:
        order = payload.get("order")
        if not isinstance(order, dict) or not order.get("status"):
            return False, "invalid_payload"

        user_id = _parse_user_id(order.get("userId"))
        if user_id is None:
            return False, "no_recipient"

        status = str(order["status"])
        label = _ORDER_STATUS_LABELS.get(status, status)
        reference = order.get("orderNumber") or order.get("id")
        notification = NotificationCreate(
            type="ORDER_STATUS",
            icon="ShoppingCart",
            color="green" if status == "submitted" else "gray",
            brand_id=order.get("brandId"),
            brand_name=order.get("brandName"),
            message=f"Order {reference} {label}",
        )
        await self._dispatch_all([user_id], notification)
        return True, "processed"

    async def _dispatch_all(self, user_ids: Sequence[int], notification: NotificationCreate) -> None:
        async with lifespan_session(self._session_factory) as session:
            dispatcher = NotificationDispatcher(NotificationRepository(session), self._channel)
            for user_id in user_ids:
                await dispatcher.dispatch(user_id, notification)
            await dispatcher.commit()

"""Notification bell state refreshed by polling the notification service.

Real-time push is best-effort; the bell falls back to asking for the unread
count at a fixed interval so a missed push only delays the badge.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from .client import NotificationClient, ServiceAPIError
from .metrics import NOTIFICATION_POLL_FAILURES_TOTAL

_LOGGER = logging.getLogger(__name__)

UnreadListener = Callable[[int], Awaitable[None]]


class NotificationBell:
    def __init__(
        self,
        client: NotificationClient,
        *,
        interval_seconds: float = 30.0,
        on_change: UnreadListener | None = None,
    ) -> None:
        self.client = client
        self.interval_seconds = interval_seconds
        self.on_change = on_change
        self.unread: int | None = None
        self.notifications: list[dict[str, Any]] = []
        self.pagination: dict[str, int] = {"total": 0, "pages": 0, "current": 1}

    async def refresh(self) -> int | None:
        """Fetch the unread count once; listeners hear about changes only."""

        try:
            count = await self.client.unread_count()
        except ServiceAPIError as exc:
            NOTIFICATION_POLL_FAILURES_TOTAL.inc()
            _LOGGER.warning("Unread count refresh failed: %s", exc.message)
            return self.unread
        if count != self.unread:
            self.unread = count
            if self.on_change is not None:
                await self.on_change(count)
        return count

    async def open(self, page: int = 1) -> list[dict[str, Any]]:
        payload = await self.client.list_notifications(page)
        self.notifications = list(payload.get("notifications", []))
        self.pagination = dict(payload.get("pagination", self.pagination))
        return self.notifications

    async def mark_read(self, notification_id: int) -> None:
        updated = await self.client.mark_read(notification_id)
        self.notifications = [updated if item.get("id") == notification_id else item for item in self.notifications]
        await self.refresh()

    async def receive_push(self, payload: dict[str, Any]) -> None:
        """Apply a pushed notification frame without waiting for the next poll."""

        if any(item.get("id") == payload.get("id") for item in self.notifications):
            return
        self.notifications.insert(0, payload)
        if not payload.get("read"):
            self.unread = (self.unread or 0) + 1
            if self.on_change is not None:
                await self.on_change(self.unread)

    async def run(self, stop: asyncio.Event) -> None:
        """Poll until ``stop`` is set."""

        while not stop.is_set():
            await self.refresh()
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue

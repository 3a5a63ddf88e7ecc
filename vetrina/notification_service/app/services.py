"""Notification dispatching: store the row, then push it best-effort."""

from __future__ import annotations

import logging
import math
from time import perf_counter
from typing import Any

from .channels import NOTIFICATION_EVENT, RealtimeChannel, user_room
from .metrics import (
    NOTIFICATION_PUSH_FAILURE_TOTAL,
    NOTIFICATION_PUSH_LATENCY_SECONDS,
    NOTIFICATION_PUSH_TOTAL,
    NOTIFICATIONS_CREATED_TOTAL,
    NOTIFICATIONS_READ_TOTAL,
)
from .models import Notification
from .repository import NotificationRepository
from .schemas import NotificationCreate, NotificationResponse

_LOGGER = logging.getLogger(__name__)


def notification_payload(notification: Notification) -> dict[str, Any]:
    """JSON-ready, camelCase representation shared by the API and the push frame."""

    return NotificationResponse.model_validate(notification).model_dump(mode="json", by_alias=True)


class NotificationDispatcher:
    """Writes notification rows and pushes them to the owner's real-time room."""

    def __init__(
        self,
        repository: NotificationRepository,
        channel: RealtimeChannel | None = None,
        *,
        page_size: int = 20,
    ) -> None:
        self.repository = repository
        self.channel = channel
        self.page_size = page_size
        self._pending: list[Notification] = []

    async def dispatch(self, user_id: int, payload: NotificationCreate) -> Notification:
        """Write one unread row; its push waits for :meth:`commit`."""

        notification = await self.repository.create_notification(
            user_id=user_id,
            type=payload.type,
            icon=payload.icon,
            color=payload.color,
            brand_id=payload.brand_id,
            brand_name=payload.brand_name,
            message=payload.message,
        )
        NOTIFICATIONS_CREATED_TOTAL.labels(type=payload.type).inc()
        self._pending.append(notification)
        return notification

    async def commit(self) -> int:
        """Commit the written rows, then push each of them; returns the number pushed.

        Nothing is pushed when the commit fails, so clients never see a row that
        was rolled back.
        """

        await self.repository.commit()
        pending, self._pending = self._pending, []
        pushed = 0
        for notification in pending:
            if await self.push(notification):
                pushed += 1
        return pushed

    async def push(self, notification: Notification) -> bool:
        """Push one stored notification; failures are logged and counted, never raised."""

        if self.channel is None:
            return False
        channel_name = self.channel.name
        room = user_room(notification.user_id)
        started = perf_counter()
        try:
            await self.channel.publish(room, NOTIFICATION_EVENT, notification_payload(notification))
        except Exception:
            NOTIFICATION_PUSH_FAILURE_TOTAL.labels(channel=channel_name).inc()
            _LOGGER.warning("Push of notification %s to %s failed", notification.id, room, exc_info=True)
            return False
        NOTIFICATION_PUSH_LATENCY_SECONDS.labels(channel=channel_name).observe(perf_counter() - started)
        NOTIFICATION_PUSH_TOTAL.labels(channel=channel_name).inc()
        return True

    async def list_page(self, user_id: int, page: int) -> tuple[list[Notification], int, int]:
        """Return one page of the user's notifications, newest first, with total and page count."""

        offset = (page - 1) * self.page_size
        notifications, total = await self.repository.list_for_user(user_id, limit=self.page_size, offset=offset)
        return notifications, total, math.ceil(total / self.page_size)

    async def unread_count(self, user_id: int) -> int:
        return await self.repository.count_unread(user_id)

    async def mark_read(self, user_id: int, notification_id: int) -> Notification | None:
        notification = await self.repository.get_user_notification(notification_id, user_id)
        if notification is None:
            return None
        was_unread = not notification.read
        notification = await self.repository.mark_read(notification)
        if was_unread:
            NOTIFICATIONS_READ_TOTAL.inc()
        return notification

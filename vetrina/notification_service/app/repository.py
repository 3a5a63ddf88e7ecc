"""Persistence helpers for the notification service."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Notification


class NotificationRepository:
    """Database access helpers for notifications."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_notification(
        self,
        *,
        user_id: int,
        type: str,
        icon: str,
        color: str,
        brand_id: str | None,
        brand_name: str | None,
        message: str,
    ) -> Notification:
        notification = Notification(
            user_id=user_id,
            type=type,
            icon=icon,
            color=color,
            brand_id=brand_id,
            brand_name=brand_name,
            message=message,
            read=False,
        )
        self.session.add(notification)
        await self.session.flush()
        await self.session.refresh(notification, attribute_names=["created_at"])
        return notification

    async def commit(self) -> None:
        await self.session.commit()

    async def get_user_notification(self, notification_id: int, user_id: int) -> Notification | None:
        result = await self.session.execute(
            select(Notification).where(Notification.id == notification_id, Notification.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def list_for_user(self, user_id: int, *, limit: int, offset: int) -> tuple[list[Notification], int]:
        count = select(func.count(Notification.id)).where(Notification.user_id == user_id)
        total = (await self.session.execute(count)).scalar_one()
        result = await self.session.execute(
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars()), total

    async def count_unread(self, user_id: int) -> int:
        result = await self.session.execute(
            select(func.count(Notification.id)).where(
                Notification.user_id == user_id, Notification.read.is_(False)
            )
        )
        return result.scalar_one()

    async def mark_read(self, notification: Notification) -> Notification:
        if not notification.read:
            notification.read = True
            notification.read_at = datetime.now(timezone.utc)
            await self.session.flush()
        return notification

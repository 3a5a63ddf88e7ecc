"""Dependency helpers for notification service."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vetrina.common import lifespan_session

from .repository import NotificationRepository
from .services import NotificationDispatcher


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    session_factory: async_sessionmaker[AsyncSession] = request.app.state.session_factory
    async with lifespan_session(session_factory) as session:
        yield session


def get_repository(session: AsyncSession = Depends(get_session)) -> NotificationRepository:
    return NotificationRepository(session)


def get_channel(request: Request) -> Any:
    return getattr(request.app.state, "realtime_channel", None)


def get_dispatcher(
    request: Request,
    repository: NotificationRepository = Depends(get_repository),
    channel: Any = Depends(get_channel),
) -> NotificationDispatcher:
    settings: Any = getattr(request.app.state, "settings", None)
    page_size = getattr(settings, "notification_page_size", 20)
    return NotificationDispatcher(repository, channel, page_size=page_size)

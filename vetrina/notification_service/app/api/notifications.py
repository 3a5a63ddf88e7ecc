"""HTTP routes for the session user's notifications."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from vetrina.common import get_current_user_id

from ..dependencies import get_dispatcher
from ..schemas import (
    NotificationCreate,
    NotificationListResponse,
    NotificationPagination,
    NotificationResponse,
    UnreadCountResponse,
)
from ..services import NotificationDispatcher

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    page: int = Query(default=1, ge=1),
    user_id: int = Depends(get_current_user_id),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> NotificationListResponse:
    notifications, total, pages = await dispatcher.list_page(user_id, page)
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(notification) for notification in notifications],
        pagination=NotificationPagination(total=total, pages=pages, current=page),
    )


@router.post("", response_model=NotificationResponse)
async def create_notification(
    payload: NotificationCreate,
    user_id: int = Depends(get_current_user_id),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> NotificationResponse:
    notification = await dispatcher.dispatch(user_id, payload)
    await dispatcher.commit()
    return NotificationResponse.model_validate(notification)


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    user_id: int = Depends(get_current_user_id),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> UnreadCountResponse:
    return UnreadCountResponse(count=await dispatcher.unread_count(user_id))


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: int,
    user_id: int = Depends(get_current_user_id),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> NotificationResponse:
    notification = await dispatcher.mark_read(user_id, notification_id)
    if notification is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return NotificationResponse.model_validate(notification)

"""Pydantic schemas for notification service."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

NotificationType = Literal["BRAND_ACTIVATION", "CATALOG_ADDED", "BRAND_EXPIRED", "ORDER_STATUS", "SYSTEM"]


class NotificationCreate(BaseModel):
    type: NotificationType
    icon: str = Field(min_length=1, max_length=64)
    color: str = Field(min_length=1, max_length=32)
    brand_id: str | None = Field(default=None, alias="brandId", max_length=64)
    brand_name: str | None = Field(default=None, alias="brandName", max_length=255)
    message: str = Field(min_length=1)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("brand_id", "brand_name")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None


class NotificationResponse(BaseModel):
    id: int
    user_id: int = Field(alias="userId")
    type: NotificationType
    icon: str
    color: str
    brand_id: str | None = Field(default=None, alias="brandId")
    brand_name: str | None = Field(default=None, alias="brandName")
    message: str
    read: bool
    created_at: datetime = Field(alias="createdAt")
    read_at: datetime | None = Field(default=None, alias="readAt")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class NotificationPagination(BaseModel):
    total: int
    pages: int
    current: int


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    pagination: NotificationPagination


class UnreadCountResponse(BaseModel):
    count: int

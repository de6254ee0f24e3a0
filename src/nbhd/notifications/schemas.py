"""Pydantic schemas for notification endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class NotificationResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    type: str
    title: str
    content: str | None = None
    related_id: int | None = None
    related_type: str | None = None
    related_name: str | None = None
    is_read: bool
    priority: str
    created_at: datetime


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    unread_count: int


class UnreadCountResponse(BaseModel):
    count: int


class CountResponse(BaseModel):
    detail: str
    count: int


class RegisterTokenRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=255)
    platform: str
    device_id: str | None = Field(None, max_length=255)


class DeviceTokenResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    token: str
    platform: str
    device_id: str | None = None
    is_active: bool
    created_at: datetime
    last_used_at: datetime | None = None


class DeviceTokenListResponse(BaseModel):
    tokens: list[DeviceTokenResponse]

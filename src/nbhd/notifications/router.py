"""Notification API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from nbhd.auth.dependencies import get_current_user
from nbhd.database import get_session
from nbhd.db.models import User
from nbhd.dependencies import get_presence_dep
from nbhd.notifications.schemas import (
    CountResponse,
    DeviceTokenListResponse,
    DeviceTokenResponse,
    NotificationListResponse,
    NotificationResponse,
    RegisterTokenRequest,
    UnreadCountResponse,
)
from nbhd.notifications.service import (
    clear_read,
    delete_notification,
    emit_unread_count,
    get_notifications,
    get_unread_count,
    mark_all_as_read,
    mark_as_read,
    serialize_notifications,
)
from nbhd.notifications.tokens import deactivate_token, list_tokens, register_token, unregister_token
from nbhd.ws.presence import PresenceRegistry

router = APIRouter(prefix="/api/v1", tags=["Notifications"])


@router.get("/notifications", response_model=NotificationListResponse)
async def list_notifications(
    limit: int = Query(50, ge=1, le=200),
    unread_only: bool = Query(False),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """List the caller's notifications, newest first."""
    notifications = await get_notifications(db, user.id, limit, unread_only)
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in await serialize_notifications(db, notifications)],
        unread_count=await get_unread_count(db, user.id),
    )


@router.get("/notifications/unread/count", response_model=UnreadCountResponse)
async def get_unread_notification_count(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    return UnreadCountResponse(count=await get_unread_count(db, user.id))


@router.patch("/notifications/read-all", response_model=CountResponse)
async def mark_all_read(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    presence: PresenceRegistry = Depends(get_presence_dep),
):
    """Mark all notifications as read."""
    count = await mark_all_as_read(db, user.id)
    await db.commit()
    await emit_unread_count(db, user.id, presence)
    return CountResponse(detail=f"Marked {count} notifications as read", count=count)


@router.patch("/notifications/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    presence: PresenceRegistry = Depends(get_presence_dep),
):
    """Mark a notification as read."""
    notification = await mark_as_read(db, user.id, notification_id)
    await db.commit()
    await emit_unread_count(db, user.id, presence)
    return NotificationResponse.model_validate((await serialize_notifications(db, [notification]))[0])


@router.delete("/notifications/clear-read", response_model=CountResponse)
async def clear_read_notifications(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Delete every notification the caller has already read."""
    count = await clear_read(db, user.id)
    await db.commit()
    return CountResponse(detail=f"Cleared {count} read notifications", count=count)


@router.delete("/notifications/{notification_id}", status_code=204)
async def remove_notification(
    notification_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    presence: PresenceRegistry = Depends(get_presence_dep),
):
    await delete_notification(db, user.id, notification_id)
    await db.commit()
    await emit_unread_count(db, user.id, presence)


@router.post("/notifications/register-token", response_model=DeviceTokenResponse)
async def register_device_token(
    req: RegisterTokenRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Register (or re-register) a device push token for the caller."""
    return await register_token(db, user.id, req.token, req.platform, req.device_id)


@router.get("/notifications/tokens", response_model=DeviceTokenListResponse)
async def my_device_tokens(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    tokens = await list_tokens(db, user.id)
    return DeviceTokenListResponse(tokens=[DeviceTokenResponse.model_validate(t) for t in tokens])


@router.delete("/notifications/token/{token}", status_code=204)
async def remove_device_token(
    token: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    await unregister_token(db, user.id, token)


@router.patch("/notifications/token/{token}/deactivate", status_code=204)
async def deactivate_device_token(
    token: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    await deactivate_token(db, user.id, token)

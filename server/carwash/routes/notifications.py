"""In-app notification endpoints."""

import logging
from typing import Optional

from carwash.dependencies import CurrentUser, get_current_user, require_admin
from carwash.models.notification import Notification
from carwash.models.user import User
from carwash.schemas import NotificationCreate
from carwash.services.database import get_db
from carwash.services.notifications import notify_user
from carwash.services.realtime import NOTIFICATION_STATUS_UPDATED, get_publisher, get_user_channel
from carwash.utils.serialization import serialize_notification
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/notifications", status_code=status.HTTP_201_CREATED)
async def create_notification(
    payload: NotificationCreate,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Send a notification to a user (admin only)."""
    recipient = await db.get(User, payload.user_id)
    if not recipient:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    notification = await notify_user(
        db,
        recipient.id,
        payload.title,
        payload.message,
        payload.type,
        clerk_id=recipient.clerk_id,
    )
    return serialize_notification(notification)


@router.get("/notifications")
async def list_my_notifications(
    unread: Optional[bool] = Query(None),
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    query = (
        select(Notification)
        .where(Notification.user_id == current_user.id)
        .order_by(Notification.created_at.desc())
    )
    if unread:
        query = query.where(Notification.is_read.is_(False))

    result = await db.execute(query)
    return [serialize_notification(n) for n in result.scalars().all()]


@router.put("/notifications/mark-all-read")
async def mark_all_read(
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == current_user.id, Notification.is_read.is_(False))
        .values(is_read=True)
    )
    await db.commit()

    count = result.rowcount or 0
    logger.info(f"Marked {count} notifications read for user {current_user.id}")
    return {
        "success": True,
        "count": count,
        "message": f"Marked {count} notifications as read",
    }


@router.put("/notifications/{notification_id}/read")
async def mark_read(
    notification_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Mark one of the caller's notifications read and tell their other sessions."""
    notification = await db.get(Notification, notification_id)
    if not notification or notification.user_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")

    notification.is_read = True
    await db.commit()

    payload = {"id": notification.id, "is_read": True}
    for channel_id in (current_user.id, current_user.clerk_id):
        await get_publisher().trigger(
            get_user_channel(channel_id), NOTIFICATION_STATUS_UPDATED, payload
        )
    return serialize_notification(notification)

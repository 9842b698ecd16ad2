"""Notification dispatch: persist a row, then push it over the realtime channel."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from carwash.models.notification import Notification, NotificationType
from carwash.models.user import User, UserRole
from carwash.services.realtime import (
    NEW_NOTIFICATION,
    get_admin_channel,
    get_publisher,
    get_user_channel,
)
from carwash.utils.serialization import serialize_notification
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


async def push_notification(notification: Notification, clerk_id: Optional[str] = None) -> None:
    """Push a stored notification to the recipient's channels.

    The frontend may subscribe with either the database id or the identity
    provider id, so both channels receive the event.
    """
    publisher = get_publisher()
    payload = serialize_notification(notification)

    await publisher.trigger(get_user_channel(notification.user_id), NEW_NOTIFICATION, payload)
    if clerk_id:
        await publisher.trigger(get_user_channel(clerk_id), NEW_NOTIFICATION, payload)


async def notify_user(
    db: AsyncSession,
    user_id: str,
    title: str,
    message: str,
    notification_type: NotificationType,
    clerk_id: Optional[str] = None,
) -> Notification:
    """Create a notification for one user and push it.

    Args:
        db: Database session (committed here)
        user_id: Recipient's database id
        title: Short heading
        message: Body text
        notification_type: Category shown in the UI
        clerk_id: Recipient's identity provider id, if known

    Returns:
        The stored notification
    """
    notification = Notification(
        user_id=user_id,
        title=title,
        message=message,
        type=notification_type,
        is_read=False,
    )
    db.add(notification)
    await db.commit()

    logger.info(f"Notification {notification.id} created for user {user_id}: {title}")
    await push_notification(notification, clerk_id=clerk_id)
    return notification


async def get_admin_users(db: AsyncSession) -> List[User]:
    result = await db.execute(select(User).where(User.role == UserRole.ADMIN))
    return list(result.scalars().all())


async def notify_admins(
    db: AsyncSession,
    title: str,
    message: str,
    notification_type: NotificationType,
    broadcast: Optional[Dict[str, Any]] = None,
) -> List[Notification]:
    """Create and push one notification per admin.

    Args:
        broadcast: Extra payload for a single event on the shared admin
            channel; skipped when None.
    """
    admins = await get_admin_users(db)
    logger.info(f"Notifying {len(admins)} admin(s): {title}")

    notifications = [
        Notification(
            user_id=admin.id,
            title=title,
            message=message,
            type=notification_type,
            is_read=False,
        )
        for admin in admins
    ]
    db.add_all(notifications)
    await db.commit()

    for admin, notification in zip(admins, notifications):
        await push_notification(notification, clerk_id=admin.clerk_id)

    if broadcast is not None:
        payload = dict(broadcast)
        payload.setdefault("message", message)
        payload.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
        await get_publisher().trigger(get_admin_channel(), NEW_NOTIFICATION, payload)

    return notifications

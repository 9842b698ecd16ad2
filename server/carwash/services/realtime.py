"""
Realtime notification delivery over Pusher Channels.

Notifications are stored in the database first; the push here is a
best-effort call-through to the hosted service so connected dashboards can
update without polling. Failures are logged and reported as ``False``.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import pusher
from carwash.config import settings

logger = logging.getLogger(__name__)

# Channel and event names shared with the frontend
ADMIN_CHANNEL = "admin-notifications"
NEW_NOTIFICATION = "new-notification"
NOTIFICATION_STATUS_UPDATED = "notification-status-updated"


def get_user_channel(user_id: str) -> str:
    """Private feed of a single user (DB id or identity provider id)."""
    return f"user-{user_id}"


def get_admin_channel() -> str:
    return ADMIN_CHANNEL


class RealtimePublisher:
    """Wraps the Pusher REST client."""

    def __init__(
        self,
        app_id: str = "",
        key: str = "",
        secret: str = "",
        cluster: str = "ap2",
    ):
        self.enabled = bool(app_id and key and secret)
        self._client: Optional[pusher.Pusher] = None
        if self.enabled:
            self._client = pusher.Pusher(
                app_id=app_id,
                key=key,
                secret=secret,
                cluster=cluster,
                ssl=True,
            )
        else:
            logger.warning("Pusher credentials not configured; realtime push disabled")

    async def trigger(self, channel: str, event: str, data: Dict[str, Any]) -> bool:
        """Publish ``data`` on ``channel``.

        Returns:
            True if the hosted service accepted the event, False otherwise
        """
        if not self.enabled:
            logger.debug(f"Skipping push to {channel}/{event}: publisher disabled")
            return False

        try:
            # The Pusher SDK is synchronous (requests based)
            await asyncio.to_thread(self._client.trigger, channel, event, data)
            logger.info(f"Pushed {event} to {channel}")
            return True
        except Exception as e:
            logger.error(f"Failed to push {event} to {channel}: {e}")
            return False


_publisher: Optional[RealtimePublisher] = None


def get_publisher() -> RealtimePublisher:
    """Return the process-wide publisher, creating it from settings."""
    global _publisher
    if _publisher is None:
        _publisher = RealtimePublisher(
            app_id=settings.PUSHER_APP_ID,
            key=settings.PUSHER_KEY,
            secret=settings.PUSHER_SECRET,
            cluster=settings.PUSHER_CLUSTER,
        )
    return _publisher


def set_publisher(publisher: Optional[RealtimePublisher]) -> None:
    """Replace the process-wide publisher (used by tests)."""
    global _publisher
    _publisher = publisher

"""
User-visible notifications.

In-memory pub/sub feed for the success/error messages produced by lifecycle
operations ("Session Created", "Failed to create session", ...). Outer
surfaces subscribe to it or read its history.

Uses asyncio queues; safe to share between request handlers on one loop.

Example usage:
    publisher = NotificationPublisher()
    await publisher.publish_success(
        "Session Started",
        "Good luck with your interview!",
        session_id=session.id,
    )
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

logger = logging.getLogger(__name__)


__all__ = ["Notification", "NotificationPublisher", "NotificationType"]


class NotificationType(str, Enum):
    """
    Notification variants.

    Attributes:
        SUCCESS: An operation completed.
        INFO: Neutral status message.
        ERROR: An operation failed; shown prominently.
    """

    SUCCESS = "success"
    INFO = "info"
    ERROR = "error"


def _get_utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class Notification:
    """
    A single user-visible message.

    Attributes:
        notification_type: Variant of the message.
        title: Short headline.
        description: Body text.
        timestamp: UTC timestamp when the notification was created.
        user_id: Optional owner of the notification.
        session_id: Optional session the message refers to.
        error_code: Machine-readable code for ERROR notifications.
    """

    notification_type: NotificationType
    title: str
    description: str = ""
    timestamp: str = field(default_factory=_get_utc_timestamp)
    user_id: str | None = None
    session_id: str | None = None
    error_code: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "notification_type": self.notification_type.value,
            "title": self.title,
            "description": self.description,
            "timestamp": self.timestamp,
            "user_id": self.user_id,
            "session_id": self.session_id,
            "error_code": self.error_code,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


class NotificationPublisher:
    """
    Publisher for user-visible notifications.

    Manages multiple subscriber queues and broadcasts notifications to all.
    Keeps a bounded history so late subscribers see recent messages.

    Example:
        publisher = NotificationPublisher()
        queue = await publisher.subscribe()
        await publisher.publish_error("Error", "Failed to create session.")
        notification = await queue.get()
    """

    def __init__(self, max_history: int = 100) -> None:
        """
        Initialize the publisher.

        Args:
            max_history: Maximum number of notifications to retain in history.
        """
        self._subscribers: list[asyncio.Queue[Notification]] = []
        self._history: list[Notification] = []
        self._max_history = max_history
        self._lock = asyncio.Lock()
        logger.debug("NotificationPublisher initialized with max_history=%d", max_history)

    async def subscribe(self) -> asyncio.Queue[Notification]:
        """
        Subscribe to notifications.

        The returned queue is pre-filled with the current history. Caller is
        responsible for calling unsubscribe when done.
        """
        queue: asyncio.Queue[Notification] = asyncio.Queue()
        async with self._lock:
            self._subscribers.append(queue)
            for notification in self._history:
                await queue.put(notification)
        logger.debug("New subscriber added. Total: %d", len(self._subscribers))
        return queue

    async def unsubscribe(self, queue: asyncio.Queue[Notification]) -> None:
        async with self._lock:
            if queue in self._subscribers:
                self._subscribers.remove(queue)
        logger.debug("Subscriber removed. Total: %d", len(self._subscribers))

    async def publish(self, notification: Notification) -> None:
        """
        Publish a notification to all subscribers and record it in history.

        Args:
            notification: The notification to publish.
        """
        async with self._lock:
            self._history.append(notification)
            if len(self._history) > self._max_history:
                self._history = self._history[-self._max_history :]

            for queue in self._subscribers:
                await queue.put(notification)

        logger.debug(
            "Published notification: %s - %s",
            notification.notification_type.value,
            notification.title,
        )

    async def publish_success(
        self,
        title: str,
        description: str = "",
        *,
        user_id: str | None = None,
        session_id: str | None = None,
    ) -> None:
        await self.publish(
            Notification(
                notification_type=NotificationType.SUCCESS,
                title=title,
                description=description,
                user_id=user_id,
                session_id=session_id,
            )
        )

    async def publish_info(
        self,
        title: str,
        description: str = "",
        *,
        user_id: str | None = None,
    ) -> None:
        await self.publish(
            Notification(
                notification_type=NotificationType.INFO,
                title=title,
                description=description,
                user_id=user_id,
            )
        )

    async def publish_error(
        self,
        title: str,
        description: str = "",
        *,
        user_id: str | None = None,
        session_id: str | None = None,
        error_code: str | None = None,
    ) -> None:
        await self.publish(
            Notification(
                notification_type=NotificationType.ERROR,
                title=title,
                description=description,
                user_id=user_id,
                session_id=session_id,
                error_code=error_code,
            )
        )

    async def get_history(self, user_id: str | None = None) -> list[Notification]:
        """
        Get the notification history (async-safe).

        Args:
            user_id: When given, only notifications addressed to this user.

        Returns:
            Copy of the history list, oldest first.
        """
        async with self._lock:
            if user_id is None:
                return list(self._history)
            return [n for n in self._history if n.user_id == user_id]

    async def clear_history(self) -> None:
        async with self._lock:
            self._history.clear()
        logger.debug("History cleared")

    @property
    def subscriber_count(self) -> int:
        """Approximate number of active subscribers (not lock-protected)."""
        return len(self._subscribers)

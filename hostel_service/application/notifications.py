"""
Transient user notifications (toasts)
"""
import asyncio
import itertools
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from ..config import settings

logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"
    WARNING = "warning"


@dataclass(frozen=True)
class Notification:
    id: str
    type: NotificationType
    message: str
    duration: float
    created_at: datetime


class NotificationCenter:
    """
    Per-user notification queue.

    A notification is dismissed automatically after its duration; a
    duration of 0 keeps it until dismissed explicitly.
    """

    def __init__(self, default_duration: float = settings.NOTIFICATION_DURATION):
        self.default_duration = default_duration
        self._items: Dict[str, List[Notification]] = {}
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._ids = itertools.count(1)

    def add(
        self,
        user_id: str,
        type: NotificationType,
        message: str,
        duration: Optional[float] = None,
    ) -> Notification:
        duration = self.default_duration if duration is None else duration
        notification = Notification(
            id=str(next(self._ids)),
            type=NotificationType(type),
            message=message,
            duration=duration,
            created_at=datetime.now(timezone.utc),
        )
        self._items.setdefault(user_id, []).append(notification)
        if duration > 0:
            loop = asyncio.get_running_loop()
            self._timers[notification.id] = loop.call_later(duration, self.remove, user_id, notification.id)
        logger.debug(f"Notification for {user_id}: [{notification.type.value}] {message}")
        return notification

    def success(self, user_id: str, message: str) -> Notification:
        return self.add(user_id, NotificationType.SUCCESS, message)

    def error(self, user_id: str, message: str) -> Notification:
        return self.add(user_id, NotificationType.ERROR, message)

    def list(self, user_id: str) -> List[Notification]:
        return list(self._items.get(user_id, ()))

    def remove(self, user_id: str, notification_id: str) -> bool:
        timer = self._timers.pop(notification_id, None)
        if timer is not None:
            timer.cancel()
        items = self._items.get(user_id, [])
        remaining = [n for n in items if n.id != notification_id]
        if remaining:
            self._items[user_id] = remaining
        else:
            self._items.pop(user_id, None)
        return len(remaining) != len(items)

    def clear(self, user_id: str) -> None:
        for notification in self._items.pop(user_id, []):
            timer = self._timers.pop(notification.id, None)
            if timer is not None:
                timer.cancel()

    def close(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()

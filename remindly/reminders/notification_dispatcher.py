"""Notification dispatcher for delivering due reminders to users.

The scheduler only needs something that can ``deliver(user_id, task)``. The
dispatcher implements that by handing a Notification to the channel callback
registered by the front-end (terminal, HTTP polling, ...).
"""

import inspect
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Union

from remindly.models.errors import DeliveryFailure
from remindly.utils.logger import log_debug, log_error


class Notifier(Protocol):
    """Delivery capability consumed by the scheduler."""

    async def deliver(self, user_id: str, task: str) -> None:
        """Deliver a task to a user, raising DeliveryFailure when it cannot."""
        ...


@dataclass
class Notification:
    """A reminder being delivered to a user."""
    user_id: str
    task: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def message(self) -> str:
        return f"🔔 Reminder: {self.task}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "task": self.task,
            "message": self.message,
            "created_at": self.created_at.isoformat(),
        }


ChannelCallback = Callable[[Notification], Union[None, Awaitable[None]]]


class NotificationDispatcher:
    """Delivers notifications through a single registered channel."""

    def __init__(self, callback: Optional[ChannelCallback] = None):
        self._callback: Optional[ChannelCallback] = callback
        self._delivered = 0
        self._failed = 0
        log_debug("NotificationDispatcher initialized")

    def set_channel_callback(self, callback: ChannelCallback) -> None:
        """Set the function called with each notification.

        Args:
            callback: Plain function or coroutine function taking a Notification
        """
        self._callback = callback
        log_debug("Notification channel registered")

    async def deliver(self, user_id: str, task: str) -> None:
        """Deliver a reminder to a user.

        Raises:
            DeliveryFailure: If no channel is registered or the channel fails
        """
        if self._callback is None:
            self._failed += 1
            raise DeliveryFailure(f"No notification channel registered for user {user_id}")

        notification = Notification(user_id=user_id, task=task)
        try:
            result = self._callback(notification)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            self._failed += 1
            log_error(f"Failed to deliver notification to {user_id}: {e}")
            raise DeliveryFailure(f"Could not deliver reminder to {user_id}: {e}") from e

        self._delivered += 1
        log_debug(f"Notification delivered to {user_id}: {task[:50]}")

    def get_stats(self) -> Dict[str, int]:
        return {
            "delivered": self._delivered,
            "failed": self._failed,
            "has_channel": int(self._callback is not None),
        }

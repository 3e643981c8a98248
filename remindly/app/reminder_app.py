"""Application orchestration for programmatic access.

This module centralizes startup/shutdown of the reminder engine so it can
be reused by different front-ends (CLI, HTTP API, etc.).
"""

from __future__ import annotations

import asyncio
from collections import deque
from pathlib import Path
from typing import Any, Callable, Deque, Dict, List, Optional

from config.config import AppConfig, load_config
from remindly.models.errors import PersistenceError, ReminderError
from remindly.models.reminder import (
    CreateReminder,
    DeleteReminder,
    ListReminders,
    Reminder,
    SetTimeZone,
)
from remindly.reminders.notification_dispatcher import Notification, NotificationDispatcher
from remindly.reminders.reminder_service import ReminderService
from remindly.reminders.scheduler import Clock, Sleep
from remindly.store import ReminderStore, build_store
from remindly.utils.command_parser import HELP_TEXT, ShowHelp, parse_command
from remindly.utils.logger import log_error, log_info
from remindly.utils.time_normalizer import format_local


def describe_created(reminder: Reminder) -> str:
    """Confirmation message for a newly created reminder."""
    at = format_local(reminder.due_at, reminder.time_zone)
    if reminder.frequency:
        return (
            f'Recurring reminder set for "{reminder.task}" every {reminder.frequency.value} '
            f"at {at} ({reminder.time_zone})."
        )
    return f'Reminder set for "{reminder.task}" at {at} ({reminder.time_zone}).'


def describe_listing(reminders: List[Reminder]) -> str:
    """Numbered listing of a user's reminders."""
    if not reminders:
        return "You have no reminders set."
    lines = [
        f"{index}. {reminder.task} at {format_local(reminder.due_at, reminder.time_zone)} "
        f"({reminder.describe_schedule()})"
        for index, reminder in enumerate(reminders, start=1)
    ]
    return "Your reminders:\n" + "\n".join(lines)


class ReminderApp:
    """Coordinates core services for the reminder engine."""

    def __init__(
        self,
        config_path: Optional[Path] = None,
        config: Optional[AppConfig] = None,
        store: Optional[ReminderStore] = None,
        clock: Optional[Clock] = None,
        sleep: Optional[Sleep] = None
    ) -> None:
        self._config_path = config_path
        self._config: Optional[AppConfig] = config
        self._store: Optional[ReminderStore] = store
        self._clock = clock
        self._sleep = sleep
        self._dispatcher = NotificationDispatcher(self._handle_notification)
        self._reminder_service: Optional[ReminderService] = None

        self._startup_lock = asyncio.Lock()
        self._is_started = False

        # Notification handling
        self._notification_queue: Optional[asyncio.Queue[Notification]] = None
        self._notification_history: Deque[Notification] = deque(maxlen=100)
        self._external_notification_callback: Optional[Callable[[Notification], None]] = None

    @property
    def config(self) -> AppConfig:
        if not self._config:
            raise RuntimeError("ReminderApp not started yet; config unavailable")
        return self._config

    @property
    def reminder_service(self) -> ReminderService:
        if not self._reminder_service:
            raise RuntimeError("ReminderApp not started yet; reminder service unavailable")
        return self._reminder_service

    @property
    def is_started(self) -> bool:
        return self._is_started

    async def startup(self) -> None:
        """Load configuration and initialize dependencies."""

        async with self._startup_lock:
            if self._is_started:
                return

            if self._config is None:
                log_info("ReminderApp startup: loading configuration")
                self._config = load_config(self._config_path)

            buffer = self._config.api.notification_buffer
            self._notification_queue = asyncio.Queue(maxsize=buffer)
            self._notification_history = deque(maxlen=buffer)

            if self._store is None:
                log_info("ReminderApp startup: opening reminder store")
                self._store = build_store(self._config.storage)

            log_info("ReminderApp startup: starting reminder service")
            self._reminder_service = ReminderService(
                store=self._store,
                notifier=self._dispatcher,
                config=self._config.scheduler,
                clock=self._clock,
                sleep=self._sleep,
            )
            await self._reminder_service.start()

            self._is_started = True
            log_info("ReminderApp startup complete")

    async def shutdown(self) -> None:
        """Gracefully shut down services."""

        if not self._is_started:
            return

        log_info("ReminderApp shutdown: stopping services")

        if self._reminder_service:
            try:
                await self._reminder_service.stop()
            except Exception as exc:  # pragma: no cover - best effort cleanup
                log_error(f"Error stopping ReminderService: {exc}")

        if self._store:
            await self._store.close()

        self._is_started = False
        log_info("ReminderApp shutdown complete")

    async def handle_message(self, user_id: str, message: str) -> str:
        """Run a chat message from a user and return the reply text.

        Validation and store errors become user-facing replies.
        """

        if not self._is_started:
            await self.startup()

        command = parse_command(user_id, message)
        if command is None:
            return "Sorry, I didn't understand that. Send /help to see what I can do."

        try:
            return await self._run_command(command)
        except PersistenceError as exc:
            log_error(f"Store failure while handling '{message}' from {user_id}: {exc.__cause__ or exc}")
            return exc.user_message
        except ReminderError as exc:
            return exc.user_message

    async def _run_command(self, command) -> str:
        service = self.reminder_service

        if isinstance(command, ShowHelp):
            return HELP_TEXT
        if isinstance(command, SetTimeZone):
            zone = await service.set_time_zone(command)
            return f"Time zone set to {zone}."
        if isinstance(command, CreateReminder):
            return describe_created(await service.create_reminder(command))
        if isinstance(command, ListReminders):
            return describe_listing(await service.list_reminders(command))
        if isinstance(command, DeleteReminder):
            await service.delete_reminder(command)
            return "Reminder deleted successfully."
        raise TypeError(f"Unsupported command: {command!r}")

    def get_reminder_stats(self) -> Dict[str, Any]:
        """Return reminder service status information."""

        if not self._reminder_service:
            raise RuntimeError("ReminderApp not started yet; stats unavailable")

        return {
            **self._reminder_service.get_stats(),
            "dispatcher": self._dispatcher.get_stats(),
            "pending_notifications": self._notification_queue.qsize() if self._notification_queue else 0,
        }

    async def get_notifications(
        self,
        *,
        limit: int = 20,
        flush: bool = True,
        user_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Retrieve reminder notifications captured so far.

        Args:
            limit: Maximum number of notifications to return
            flush: If True, consume pending notifications only; otherwise return recent history
            user_id: Only return notifications for this user
        """

        def wanted(record: Notification) -> bool:
            return user_id is None or record.user_id == user_id

        if flush and self._notification_queue is not None:
            notifications: List[Dict[str, Any]] = []
            kept: List[Notification] = []
            while len(notifications) < limit:
                try:
                    record = self._notification_queue.get_nowait()
                except asyncio.QueueEmpty:
                    break
                if wanted(record):
                    notifications.append(record.to_dict())
                else:
                    kept.append(record)
            for record in kept:
                self._notification_queue.put_nowait(record)
            return notifications

        history_sample = [record for record in self._notification_history if wanted(record)][:limit]
        return [record.to_dict() for record in history_sample]

    def register_notification_callback(self, callback: Callable[[Notification], None]) -> None:
        """Register an additional callback for real-time notifications."""

        self._external_notification_callback = callback

    def snapshot(self) -> Dict[str, Any]:
        """Return a health snapshot of the app state."""

        return {
            "is_started": self._is_started,
            "config_loaded": self._config is not None,
            "reminder_stats": self._reminder_service.get_stats() if self._reminder_service else None,
        }

    async def readiness(self) -> bool:
        """Whether the reminder store answers."""

        return bool(self._store and await self._store.readiness())

    def _handle_notification(self, notification: Notification) -> None:
        """Capture notifications delivered by the scheduler.

        A failing external callback propagates so the scheduler sees the
        delivery as failed and applies its retry policy.
        """

        if self._external_notification_callback:
            self._external_notification_callback(notification)

        self._notification_history.appendleft(notification)

        if self._notification_queue is not None:
            try:
                self._notification_queue.put_nowait(notification)
            except asyncio.QueueFull:
                # Drop the oldest pending item to make room and retry
                try:
                    _ = self._notification_queue.get_nowait()
                except asyncio.QueueEmpty:
                    pass
                self._notification_queue.put_nowait(notification)

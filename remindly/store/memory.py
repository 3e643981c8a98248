import asyncio
from datetime import datetime, timezone
from typing import Dict, List, Optional

from remindly.models.reminder import (
    DEFAULT_TIME_ZONE,
    Reminder,
    ReminderState,
    UserTimeZone,
)
from remindly.store.istore import ReminderStore
from remindly.utils.logger import log_warning


class MemoryReminderStore(ReminderStore):
    """
    A process-local reminder store.

    Records are lost when the process exits, prefer the SQLite store outside of tests.
    Records are copied in and out so callers never share mutable state with the store.
    """

    def __init__(self, warn: bool = True):
        if warn:
            log_warning("Using memory reminder store, reminders will not survive a restart")
        self._reminders: Dict[str, Reminder] = {}
        self._time_zones: Dict[str, UserTimeZone] = {}
        self._lock = asyncio.Lock()

    async def readiness(self) -> bool:
        return True  # Always ready, it's memory :)

    async def create(self, reminder: Reminder) -> str:
        async with self._lock:
            self._reminders[reminder.id] = reminder.model_copy(deep=True)
        return reminder.id

    async def get(self, reminder_id: str) -> Optional[Reminder]:
        reminder = self._reminders.get(reminder_id)
        return reminder.model_copy(deep=True) if reminder else None

    async def find_by_user(self, user_id: str) -> List[Reminder]:
        # Dicts keep insertion order, which is creation order
        return [
            reminder.model_copy(deep=True)
            for reminder in self._reminders.values()
            if reminder.user_id == user_id
        ]

    async def list_scheduled(self) -> List[Reminder]:
        return [
            reminder.model_copy(deep=True)
            for reminder in self._reminders.values()
            if reminder.state == ReminderState.SCHEDULED
        ]

    async def update_due_at(self, reminder_id: str, due_at: datetime) -> bool:
        async with self._lock:
            reminder = self._reminders.get(reminder_id)
            if reminder is None:
                return False
            self._reminders[reminder_id] = reminder.model_copy(
                update={"due_at": due_at.astimezone(timezone.utc), "state": ReminderState.SCHEDULED}
            )
        return True

    async def delete(self, reminder_id: str) -> None:
        async with self._lock:
            self._reminders.pop(reminder_id, None)

    async def set_time_zone(self, user_id: str, time_zone: str) -> None:
        async with self._lock:
            self._time_zones[user_id] = UserTimeZone(user_id=user_id, time_zone=time_zone)

    async def get_time_zone(self, user_id: str) -> str:
        preference = self._time_zones.get(user_id)
        return preference.time_zone if preference else DEFAULT_TIME_ZONE

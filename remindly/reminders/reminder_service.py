"""Reminder service that handles commands and owns the scheduler.

This module provides the ReminderService class that ties together the
reminder store, the time normalizer and the ReminderScheduler.
"""

from typing import List, Optional

from config.config import SchedulerConfig
from remindly.models.errors import IndexOutOfRange
from remindly.models.reminder import (
    CreateReminder,
    DeleteReminder,
    Frequency,
    ListReminders,
    OneTime,
    Recurring,
    Reminder,
    ReminderState,
    SetTimeZone,
)
from remindly.reminders.notification_dispatcher import Notifier
from remindly.reminders.scheduler import Clock, ReminderScheduler, Sleep, utc_clock
from remindly.store.istore import ReminderStore
from remindly.utils.logger import log_debug, log_info
from remindly.utils.time_normalizer import normalize, resolve_time_zone


class ReminderService:
    """Main service for managing reminders.

    This service:
    - Validates and applies CreateReminder, SetTimeZone, ListReminders and
      DeleteReminder commands
    - Arms a timer for every created reminder
    - Re-arms stored reminders on start, cancels timers on stop
    """

    def __init__(
        self,
        store: ReminderStore,
        notifier: Notifier,
        config: SchedulerConfig,
        clock: Optional[Clock] = None,
        sleep: Optional[Sleep] = None
    ):
        """Initialize the reminder service.

        Args:
            store: Reminder store
            notifier: Delivery capability used when reminders fire
            config: Scheduler configuration
            clock: Current-time source, injectable for tests
            sleep: Wait primitive, injectable for tests
        """
        self.store = store
        self.config = config
        self._clock = clock or utc_clock
        self.scheduler = ReminderScheduler(
            store=store,
            notifier=notifier,
            config=config,
            clock=self._clock,
            sleep=sleep
        )

        self._is_started = False

        log_info("ReminderService initialized")

    async def start(self) -> None:
        """Start the reminder service and re-arm stored reminders."""
        if self._is_started:
            log_debug("ReminderService already started")
            return

        if self.config.recover_on_start:
            await self.scheduler.recover()

        self._is_started = True
        log_info("ReminderService started successfully")

    async def stop(self) -> None:
        """Stop the reminder service. Stored reminders stay in the store."""
        if not self._is_started:
            return

        await self.scheduler.stop()

        self._is_started = False
        log_info("ReminderService stopped")

    async def create_reminder(self, command: CreateReminder) -> Reminder:
        """Create, persist and arm a reminder.

        The user's current timezone is used and copied onto the reminder.

        Raises:
            InvalidTimeFormat, InvalidTimeZone, InvalidFrequency: On bad input
            PersistenceError: If the store fails
        """
        schedule = OneTime()
        if command.frequency is not None:
            schedule = Recurring(frequency=Frequency.parse(command.frequency))

        time_zone = await self.store.get_time_zone(command.user_id)
        due_at = normalize(command.local_time, time_zone, self._clock())

        reminder = Reminder(
            user_id=command.user_id,
            task=command.task,
            local_time=command.local_time.strip(),
            time_zone=time_zone,
            due_at=due_at,
            schedule=schedule,
        )
        await self.store.create(reminder)
        self.scheduler.arm(reminder)

        log_info(
            f"Created reminder {reminder.id} for user {reminder.user_id}: "
            f"'{reminder.task}' at {reminder.local_time} {time_zone} ({reminder.describe_schedule()})"
        )
        return reminder

    async def set_time_zone(self, command: SetTimeZone) -> str:
        """Set the zone used for a user's future reminders.

        Existing reminders keep the zone they were created with.

        Returns:
            The stored zone name

        Raises:
            InvalidTimeZone: If the zone is unknown (nothing is stored)
            PersistenceError: If the store fails
        """
        zone = resolve_time_zone(command.zone).key
        await self.store.set_time_zone(command.user_id, zone)
        log_info(f"Time zone for user {command.user_id} set to {zone}")
        return zone

    async def get_time_zone(self, user_id: str) -> str:
        return await self.store.get_time_zone(user_id)

    async def list_reminders(self, command: ListReminders) -> List[Reminder]:
        """Reminders of a user in creation order."""
        return await self.store.find_by_user(command.user_id)

    async def delete_reminder(self, command: DeleteReminder) -> Reminder:
        """Delete a reminder by its 1-based position in the user's listing.

        Returns:
            The deleted reminder, marked cancelled

        Raises:
            IndexOutOfRange: If the position is outside [1, count]
            PersistenceError: If the store fails
        """
        reminders = await self.store.find_by_user(command.user_id)
        if command.position < 1 or command.position > len(reminders):
            raise IndexOutOfRange(
                f"Invalid reminder index {command.position}. "
                f"You have {len(reminders)} reminder(s); please check your reminders and try again."
            )

        reminder = reminders[command.position - 1]
        await self.scheduler.cancel_and_delete(reminder.id)
        reminder.state = ReminderState.CANCELLED
        log_info(f"Deleted reminder {reminder.id} (position {command.position}) for user {command.user_id}")
        return reminder

    def get_stats(self) -> dict:
        """Get reminder service statistics.

        Returns:
            Dictionary with service stats
        """
        return {
            "is_started": self._is_started,
            "scheduler": self.scheduler.get_stats(),
        }

    async def __aenter__(self):
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.stop()

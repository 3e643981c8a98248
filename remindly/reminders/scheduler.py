"""Reminder scheduler: one timer per reminder, fire and lifecycle transition.

Each live reminder owns an asyncio task that sleeps until the reminder is
due, delivers it, and then either deletes the record (one-time) or persists
the next due instant and goes back to sleep (recurring). There is no shared
polling loop.
"""

import asyncio
from datetime import datetime, timezone
from functools import partial
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from config.config import SchedulerConfig
from remindly.models.errors import PersistenceError
from remindly.models.reminder import Reminder, ReminderState
from remindly.reminders.notification_dispatcher import Notifier
from remindly.store.istore import ReminderStore
from remindly.utils.logger import log_debug, log_error, log_info, log_warning
from remindly.utils.time_normalizer import next_due_after


Clock = Callable[[], datetime]
Sleep = Callable[[float], Awaitable[Any]]


def utc_clock() -> datetime:
    return datetime.now(timezone.utc)


class ReminderScheduler:
    """Owns the armed timer of every scheduled reminder.

    Policies (see SchedulerConfig):
    - Delivery is retried ``delivery_attempts`` times. If it still fails the
      failure is logged and the lifecycle advances anyway.
    - Recurring reminders that wake up several periods late follow
      ``catch_up_policy``: SKIP_MISSED fires once and jumps to the next future
      period, CATCH_UP fires once per missed period.
    - Store writes after a fire are retried ``persist_attempts`` times. If they
      still fail the reminder is recorded as a lost recurrence and not re-armed.
    """

    def __init__(
        self,
        store: ReminderStore,
        notifier: Notifier,
        config: SchedulerConfig,
        clock: Optional[Clock] = None,
        sleep: Optional[Sleep] = None
    ):
        """Initialize the scheduler.

        Args:
            store: Source of truth for reminder records
            notifier: Delivery capability
            config: Retry and catch-up policies
            clock: Returns the current aware UTC instant
            sleep: Coroutine function used for every wait
        """
        self.store = store
        self.notifier = notifier
        self.config = config
        self._clock: Clock = clock or utc_clock
        self._sleep: Sleep = sleep or asyncio.sleep

        self._tasks: Dict[str, asyncio.Task] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lost: Dict[str, str] = {}

        self._fired = 0
        self._delivered = 0
        self._delivery_failures = 0

        log_info(f"ReminderScheduler initialized (catch-up policy: {config.catch_up_policy.value})")

    @property
    def armed_count(self) -> int:
        return len(self._tasks)

    @property
    def lost_recurrences(self) -> Dict[str, str]:
        """Reminder id -> reason, for reminders that stopped re-arming."""
        return dict(self._lost)

    def is_armed(self, reminder_id: str) -> bool:
        task = self._tasks.get(reminder_id)
        return task is not None and not task.done()

    def arm(self, reminder: Reminder) -> None:
        """Start the timer of a reminder, replacing any existing one.

        Reminders already due fire immediately.
        """
        existing = self._tasks.pop(reminder.id, None)
        if existing and not existing.done():
            existing.cancel()

        task = asyncio.create_task(self._run(reminder), name=f"reminder-{reminder.id}")
        task.add_done_callback(partial(self._on_task_done, reminder.id))
        self._tasks[reminder.id] = task

        delay = (reminder.due_at - self._clock()).total_seconds()
        if delay > 0:
            log_info(f"Armed reminder {reminder.id} for {reminder.due_at.isoformat()} ({delay:.0f}s)")
        else:
            log_info(f"Reminder {reminder.id} is overdue, firing now")

    async def cancel(self, reminder_id: str) -> bool:
        """Cancel the timer of a reminder.

        Waits for an in-flight fire to finish its lifecycle transition first.

        Returns:
            True if a timer was armed
        """
        async with self._lock_for(reminder_id):
            return self._cancel_task(reminder_id)

    async def cancel_and_delete(self, reminder_id: str) -> None:
        """Cancel the timer and delete the record as one step.

        Raises:
            PersistenceError: If the store delete fails
        """
        async with self._lock_for(reminder_id):
            self._cancel_task(reminder_id)
            await self.store.delete(reminder_id)
        self._locks.pop(reminder_id, None)
        log_info(f"Reminder {reminder_id} cancelled and deleted")

    async def recover(self) -> int:
        """Re-arm every scheduled reminder found in the store.

        Returns:
            Number of reminders armed
        """
        reminders = await self.store.list_scheduled()
        for reminder in reminders:
            self.arm(reminder)
        log_info(f"Recovered {len(reminders)} reminder(s) from the store")
        return len(reminders)

    async def stop(self) -> None:
        """Cancel every armed timer."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        log_info(f"ReminderScheduler stopped ({len(tasks)} timer(s) cancelled)")

    async def fire(self, reminder: Reminder) -> Optional[Reminder]:
        """Deliver a due reminder and apply its lifecycle transition.

        Callers hold the reminder's lock.

        Returns:
            The rescheduled reminder for a recurring reminder, else None
        """
        loaded, latest = await self._with_store_retries(
            reminder, "load", lambda: self.store.get(reminder.id)
        )
        if not loaded:
            return None
        if latest is None or latest.state != ReminderState.SCHEDULED:
            log_info(f"Reminder {reminder.id} was deleted before firing, skipping delivery")
            return None

        latest.state = ReminderState.FIRED
        self._fired += 1
        await self._deliver(latest)

        if not latest.is_recurring:
            await self._with_store_retries(latest, "delete", lambda: self.store.delete(latest.id))
            log_debug(f"One-time reminder {latest.id} removed after firing")
            return None

        next_due = next_due_after(latest, self._clock(), self.config.catch_up_policy)
        saved, still_exists = await self._with_store_retries(
            latest, "reschedule", lambda: self.store.update_due_at(latest.id, next_due)
        )
        if not saved:
            return None
        if not still_exists:
            log_info(f"Reminder {latest.id} was deleted while firing, not re-arming")
            return None

        log_info(f"Recurring reminder {latest.id} next due {next_due.isoformat()}")
        return latest.model_copy(update={"due_at": next_due, "state": ReminderState.SCHEDULED})

    def get_stats(self) -> Dict[str, Any]:
        return {
            "armed": self.armed_count,
            "fired": self._fired,
            "delivered": self._delivered,
            "delivery_failures": self._delivery_failures,
            "lost_recurrences": len(self._lost),
            "catch_up_policy": self.config.catch_up_policy.value,
        }

    async def _run(self, reminder: Reminder) -> None:
        current: Optional[Reminder] = reminder
        while current is not None:
            # Loop rather than trust a single sleep: the wall clock may move.
            while True:
                delay = (current.due_at - self._clock()).total_seconds()
                if delay <= 0:
                    break
                await self._sleep(delay)

            async with self._lock_for(current.id):
                try:
                    current = await self.fire(current)
                except Exception as e:
                    self._lost[current.id] = f"fire crashed: {e!r}"
                    log_error(f"Reminder {current.id} stopped after an unexpected error: {e}", exc_info=True)
                    return

    async def _deliver(self, reminder: Reminder) -> bool:
        attempts = self.config.delivery_attempts
        for attempt in range(1, attempts + 1):
            try:
                await self.notifier.deliver(reminder.user_id, reminder.task)
            except Exception as e:
                log_warning(
                    f"Delivery of reminder {reminder.id} failed (attempt {attempt}/{attempts}): {e}"
                )
                if attempt < attempts:
                    await self._sleep(self.config.retry_delay_seconds)
                continue
            self._delivered += 1
            log_info(f"Delivered reminder {reminder.id} to user {reminder.user_id}")
            return True

        self._delivery_failures += 1
        log_error(
            f"Giving up on delivering reminder {reminder.id} after {attempts} attempt(s), "
            "advancing its schedule anyway"
        )
        return False

    async def _with_store_retries(
        self,
        reminder: Reminder,
        action: str,
        operation: Callable[[], Awaitable[Any]]
    ) -> Tuple[bool, Any]:
        attempts = self.config.persist_attempts
        for attempt in range(1, attempts + 1):
            try:
                return True, await operation()
            except PersistenceError as e:
                log_warning(
                    f"Store {action} for reminder {reminder.id} failed (attempt {attempt}/{attempts}): {e}"
                )
                if attempt < attempts:
                    await self._sleep(self.config.retry_delay_seconds)

        reason = f"{action} failed after {attempts} attempt(s)"
        self._lost[reminder.id] = reason
        log_error(
            f"Lost reminder {reminder.id} ('{reminder.task}'): {reason}. "
            "It will not be re-armed until the process restarts."
        )
        return False, None

    def _cancel_task(self, reminder_id: str) -> bool:
        task = self._tasks.pop(reminder_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def _lock_for(self, reminder_id: str) -> asyncio.Lock:
        lock = self._locks.get(reminder_id)
        if lock is None:
            lock = self._locks[reminder_id] = asyncio.Lock()
        return lock

    def _on_task_done(self, reminder_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(reminder_id) is task:
            del self._tasks[reminder_id]
            lock = self._locks.get(reminder_id)
            if lock is not None and not lock.locked():
                del self._locks[reminder_id]

        if task.cancelled():
            log_debug(f"Timer for reminder {reminder_id} cancelled")
            return

        exc = task.exception()
        if exc is not None:
            log_error(f"Timer for reminder {reminder_id} crashed: {exc!r}")

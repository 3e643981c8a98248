"""Reminders module: scheduling, delivery and command handling."""

from remindly.reminders.reminder_service import ReminderService
from remindly.reminders.scheduler import ReminderScheduler
from remindly.reminders.notification_dispatcher import NotificationDispatcher, Notification, Notifier

__all__ = [
    'ReminderService',
    'ReminderScheduler',
    'NotificationDispatcher',
    'Notification',
    'Notifier',
]

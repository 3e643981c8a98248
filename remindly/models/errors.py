"""Exceptions raised by the reminder engine.

Validation errors carry a ``user_message`` that front-ends show verbatim.
Infrastructure errors (store, delivery) always show their default message
to users; the detail stays in ``str(exc)``, the logs and the chained cause.
"""

from typing import Optional


class ReminderError(Exception):
    """Base class for every reminder engine error."""

    default_message = "Something went wrong with your reminder."
    # Whether the detail passed to the constructor may be shown to users
    exposes_detail = True

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)
        if self.exposes_detail and message:
            self.user_message = message
        else:
            self.user_message = self.default_message


class InvalidTimeFormat(ReminderError):
    default_message = "Invalid time. Please use HH:MM with a 24-hour clock (e.g. 07:30 or 18:05)."


class InvalidTimeZone(ReminderError):
    default_message = 'Invalid time zone. Please use a valid time zone (e.g. "Africa/Lagos").'


class InvalidFrequency(ReminderError):
    default_message = "Invalid frequency. Please use daily or weekly."


class IndexOutOfRange(ReminderError):
    default_message = "Invalid reminder index. Please check your reminders and try again."


class PersistenceError(ReminderError):
    default_message = "Your reminders could not be saved right now. Please try again later."
    exposes_detail = False


class DeliveryFailure(ReminderError):
    default_message = "The reminder could not be delivered."
    exposes_detail = False

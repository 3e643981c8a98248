"""Command parsing for chat-style reminder messages.

This module turns a user's text message into one of the structured command
models. Supported forms:

- ``/start`` or ``/help``
- ``/settimezone Africa/Lagos``
- ``<task> by HH:MM``
- ``<task> every <daily|weekly> at HH:MM``
- ``/viewreminders``
- ``/deletereminder <n>``
"""

import re
from typing import Optional, Union

from pydantic import BaseModel

from remindly.models.reminder import CreateReminder, DeleteReminder, ListReminders, SetTimeZone
from remindly.utils.logger import log_debug


class ShowHelp(BaseModel):
    """Request for usage instructions."""
    user_id: str


Command = Union[ShowHelp, SetTimeZone, CreateReminder, ListReminders, DeleteReminder]


HELP_TEXT = (
    'Welcome! Send me a reminder in the format "task by HH:MM" or '
    '"task every daily|weekly at HH:MM". Use /settimezone <Zone> to set your time zone, '
    "/viewreminders to list your reminders and /deletereminder <n> to delete one."
)


class CommandParser:
    """Parses chat messages into reminder commands."""

    HELP_PATTERN = re.compile(r"^/(start|help)\b", re.IGNORECASE)
    TIMEZONE_PATTERN = re.compile(r"^/settimezone(?:\s+(?P<zone>\S+))?\s*$", re.IGNORECASE)
    VIEW_PATTERN = re.compile(r"^/viewreminders\s*$", re.IGNORECASE)
    DELETE_PATTERN = re.compile(r"^/deletereminder\s+(?P<position>-?\d+)\s*$", re.IGNORECASE)

    # Recurring first: "x every daily at 09:00" would otherwise never match "by"
    RECURRING_PATTERN = re.compile(
        r"^(?P<task>.+?)\s+every\s+(?P<frequency>\w+)\s+at\s+(?P<time>\d{1,2}:\d{2})\s*$",
        re.IGNORECASE
    )
    ONE_TIME_PATTERN = re.compile(
        r"^(?P<task>.+?)\s+by\s+(?P<time>\d{1,2}:\d{2})\s*$",
        re.IGNORECASE
    )

    def parse(self, user_id: str, message: str) -> Optional[Command]:
        """Parse a message from a user.

        Args:
            user_id: Sender of the message
            message: Raw text

        Returns:
            A command model, or None if the message is not a command.
            Frequency and time values are validated later by the service.
        """
        text = (message or "").strip()
        if not text:
            return None

        if self.HELP_PATTERN.match(text):
            return ShowHelp(user_id=user_id)

        match = self.TIMEZONE_PATTERN.match(text)
        if match:
            return SetTimeZone(user_id=user_id, zone=match.group("zone") or "")

        if self.VIEW_PATTERN.match(text):
            return ListReminders(user_id=user_id)

        match = self.DELETE_PATTERN.match(text)
        if match:
            return DeleteReminder(user_id=user_id, position=int(match.group("position")))

        match = self.RECURRING_PATTERN.match(text)
        if match:
            log_debug(f"Parsed recurring reminder from '{text}'")
            return CreateReminder(
                user_id=user_id,
                task=match.group("task"),
                local_time=match.group("time"),
                frequency=match.group("frequency"),
            )

        match = self.ONE_TIME_PATTERN.match(text)
        if match:
            log_debug(f"Parsed one-time reminder from '{text}'")
            return CreateReminder(
                user_id=user_id,
                task=match.group("task"),
                local_time=match.group("time"),
            )

        log_debug(f"No command found in '{text}'")
        return None


_parser = CommandParser()


def parse_command(user_id: str, message: str) -> Optional[Command]:
    """Parse a message with the shared CommandParser."""
    return _parser.parse(user_id, message)

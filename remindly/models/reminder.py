"""Data models for reminders, user preferences and inbound commands."""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from remindly.models.errors import InvalidFrequency


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Frequency(str, Enum):
    """Recurrence cadence. The set is closed."""
    DAILY = "daily"
    WEEKLY = "weekly"

    @classmethod
    def parse(cls, value: Union[str, "Frequency"]) -> "Frequency":
        """Parse user input into a Frequency.

        Raises:
            InvalidFrequency: If the value is not one of the known cadences
        """
        if isinstance(value, Frequency):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as e:
            raise InvalidFrequency(
                f'Invalid frequency "{value}". Please use daily or weekly.'
            ) from e


class ReminderState(str, Enum):
    """Lifecycle state of a reminder."""
    SCHEDULED = "scheduled"
    FIRED = "fired"
    CANCELLED = "cancelled"


class OneTime(BaseModel):
    """Fires once, then the reminder is removed."""
    kind: Literal["one_time"] = "one_time"


class Recurring(BaseModel):
    """Fires every period until deleted."""
    kind: Literal["recurring"] = "recurring"
    frequency: Frequency


Schedule = Annotated[Union[OneTime, Recurring], Field(discriminator="kind")]


class Reminder(BaseModel):
    """A reminder owned by a user."""
    id: str = Field(default_factory=lambda: uuid4().hex, description="Reminder ID")
    user_id: str = Field(description="Owning user")
    task: str = Field(min_length=1, description="Text delivered when the reminder fires")
    local_time: str = Field(description="Wall-clock time requested by the user (HH:MM)")
    time_zone: str = Field(description="IANA zone in effect when the reminder was created")
    due_at: datetime = Field(description="Next fire instant (UTC)")
    schedule: Schedule = Field(default_factory=OneTime, description="One-time or recurring")
    state: ReminderState = Field(default=ReminderState.SCHEDULED, description="Lifecycle state")
    created_at: datetime = Field(default_factory=utc_now, description="Creation timestamp (UTC)")

    @field_validator("task")
    @classmethod
    def _require_task(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("task must not be empty")
        return value

    @field_validator("due_at", "created_at")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @property
    def is_recurring(self) -> bool:
        return isinstance(self.schedule, Recurring)

    @property
    def frequency(self) -> Optional[Frequency]:
        if isinstance(self.schedule, Recurring):
            return self.schedule.frequency
        return None

    def describe_schedule(self) -> str:
        """Short label used in listings: 'one-time' or 'every daily'."""
        if self.frequency:
            return f"every {self.frequency.value}"
        return "one-time"


class UserTimeZone(BaseModel):
    """A user's timezone preference, applied to future reminder creations."""
    user_id: str
    time_zone: str
    updated_at: datetime = Field(default_factory=utc_now)


DEFAULT_TIME_ZONE = "UTC"


class CreateReminder(BaseModel):
    """Request to create a reminder at a local wall-clock time."""
    user_id: str = Field(description="Owning user")
    task: str = Field(description="Reminder text")
    local_time: str = Field(description="HH:MM in the user's timezone")
    frequency: Optional[str] = Field(default=None, description="daily or weekly; omit for one-time")

    @field_validator("task")
    @classmethod
    def _clean_task(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("task must not be empty")
        return value


class SetTimeZone(BaseModel):
    """Request to change a user's timezone for future reminders."""
    user_id: str
    zone: str


class ListReminders(BaseModel):
    """Request for a user's reminders in creation order."""
    user_id: str


class DeleteReminder(BaseModel):
    """Request to delete a reminder by its 1-based position in the listing."""
    user_id: str
    position: int = Field(description="1-based position within the user's listing")

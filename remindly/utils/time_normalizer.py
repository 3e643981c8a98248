"""Wall-clock time utilities for reminders.

This module converts a user's local ``HH:MM`` into an absolute UTC instant
and advances recurring reminders by calendar periods in their own zone, so
the local time of day stays fixed across DST transitions.
"""

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Tuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil.relativedelta import relativedelta

from config.config import CatchUpPolicy
from remindly.models.errors import InvalidTimeFormat, InvalidTimeZone
from remindly.models.reminder import Frequency, Reminder
from remindly.utils.logger import log_debug


TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")

NOMINAL_PERIODS = {
    Frequency.DAILY: timedelta(days=1),
    Frequency.WEEKLY: timedelta(weeks=1),
}


def parse_local_time(time_str: str) -> Tuple[int, int]:
    """Parse an ``HH:MM`` string.

    Args:
        time_str: Time such as "7:05" or "18:30"

    Returns:
        Tuple of (hour, minute)

    Raises:
        InvalidTimeFormat: If the string is malformed or out of range
    """
    match = TIME_PATTERN.match((time_str or "").strip())
    if not match:
        raise InvalidTimeFormat(f'Invalid time "{time_str}". Please use HH:MM (e.g. 07:30).')

    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise InvalidTimeFormat(f'Invalid time "{time_str}". Hours go 0-23 and minutes 0-59.')
    return hour, minute


def resolve_time_zone(name: str) -> ZoneInfo:
    """Look up an IANA timezone.

    Raises:
        InvalidTimeZone: If the identifier is unknown or malformed
    """
    cleaned = (name or "").strip()
    if not cleaned:
        raise InvalidTimeZone()
    try:
        return ZoneInfo(cleaned)
    except (ZoneInfoNotFoundError, ValueError, OSError) as e:
        raise InvalidTimeZone(
            f'Invalid time zone "{name}". Please use a valid time zone (e.g. "Africa/Lagos").'
        ) from e


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _at_wall_clock(day: date, hour: int, minute: int, zone: ZoneInfo) -> datetime:
    # fold=0 picks the first occurrence of an ambiguous time, so during the
    # repeated hour a time already passed once rolls to the next day. A time
    # inside a DST gap takes the pre-transition offset and lands after the gap.
    return datetime.combine(day, time(hour, minute), tzinfo=zone).astimezone(timezone.utc)


def normalize(local_time: str, time_zone: str, reference: datetime) -> datetime:
    """Turn "HH:MM in time_zone" into the next absolute instant after reference.

    The candidate is today's date in the zone at HH:MM. If that is not strictly
    after the reference, the local date is advanced by one calendar day and
    the wall-clock time is re-derived.

    Args:
        local_time: "HH:MM"
        time_zone: IANA zone name
        reference: Reference instant (naive values are treated as UTC)

    Returns:
        Due instant in UTC

    Raises:
        InvalidTimeFormat: If local_time is malformed
        InvalidTimeZone: If time_zone is unknown
    """
    zone = resolve_time_zone(time_zone)
    hour, minute = parse_local_time(local_time)
    reference = _as_utc(reference)

    day = reference.astimezone(zone).date()
    candidate = _at_wall_clock(day, hour, minute, zone)
    while candidate <= reference:
        day += timedelta(days=1)
        candidate = _at_wall_clock(day, hour, minute, zone)

    log_debug(f"Normalized {local_time} {time_zone} -> {candidate.isoformat()}")
    return candidate


def _period(frequency: Frequency, periods: int) -> relativedelta:
    if frequency == Frequency.WEEKLY:
        return relativedelta(weeks=periods)
    return relativedelta(days=periods)


def advance(
    due_at: datetime,
    local_time: str,
    time_zone: str,
    frequency: Union[Frequency, str],
    periods: int = 1
) -> datetime:
    """Move a due instant forward by whole recurrence periods.

    The period is applied to the local calendar date, then combined with the
    requested wall-clock time, so 09:00 stays 09:00 across DST changes.

    Args:
        due_at: Current due instant
        local_time: The reminder's "HH:MM"
        time_zone: The reminder's zone
        frequency: daily or weekly
        periods: Number of periods to advance

    Returns:
        Advanced due instant in UTC
    """
    zone = resolve_time_zone(time_zone)
    hour, minute = parse_local_time(local_time)
    frequency = Frequency.parse(frequency)

    local_day = _as_utc(due_at).astimezone(zone).date()
    return _at_wall_clock(local_day + _period(frequency, periods), hour, minute, zone)


def next_due_after(
    reminder: Reminder,
    now: datetime,
    policy: CatchUpPolicy = CatchUpPolicy.SKIP_MISSED
) -> datetime:
    """Compute the next due instant of a recurring reminder that just fired.

    With CATCH_UP the result is always exactly one period after the current
    due instant, even if that is still in the past, so every missed period
    fires. With SKIP_MISSED the result is the first period strictly after now.

    Raises:
        ValueError: If the reminder is not recurring
    """
    if reminder.frequency is None:
        raise ValueError(f"Reminder {reminder.id} is not recurring")

    def step(periods: int) -> datetime:
        return advance(reminder.due_at, reminder.local_time, reminder.time_zone, reminder.frequency, periods)

    if policy == CatchUpPolicy.CATCH_UP:
        return step(1)

    now = _as_utc(now)
    # Jump close to now first, then walk forward period by period.
    behind = now - reminder.due_at
    periods = max(1, int(behind / NOMINAL_PERIODS[reminder.frequency]))
    candidate = step(periods)
    while candidate > now and periods > 1 and step(periods - 1) > now:
        periods -= 1
        candidate = step(periods)
    while candidate <= now:
        periods += 1
        candidate = step(periods)
    return candidate


def format_local(instant: datetime, time_zone: str) -> str:
    """Format an instant as HH:MM in the given zone."""
    return _as_utc(instant).astimezone(resolve_time_zone(time_zone)).strftime("%H:%M")

from datetime import datetime, timedelta, timezone

import pytest

from remindly.models.errors import IndexOutOfRange, InvalidFrequency, InvalidTimeFormat, InvalidTimeZone
from remindly.models.reminder import (
    CreateReminder,
    DeleteReminder,
    Frequency,
    ListReminders,
    ReminderState,
    SetTimeZone,
)
from remindly.reminders.reminder_service import ReminderService

from conftest import FakeClock, RecordingNotifier, never_wakes

UTC = timezone.utc


@pytest.fixture
def lagos_clock() -> FakeClock:
    # 14:00 in Lagos (UTC+1, no DST)
    return FakeClock(datetime(2024, 3, 4, 13, 0, tzinfo=UTC))


@pytest.fixture
async def service(store, scheduler_config, lagos_clock):
    service = ReminderService(
        store=store,
        notifier=RecordingNotifier(clock=lagos_clock),
        config=scheduler_config,
        clock=lagos_clock,
        sleep=never_wakes,
    )
    yield service
    await service.scheduler.stop()


@pytest.mark.asyncio
async def test_create_reminder_for_time_already_passed_today_rolls_to_tomorrow(service, lagos_clock) -> None:
    await service.set_time_zone(SetTimeZone(user_id="ada", zone="Africa/Lagos"))

    reminder = await service.create_reminder(
        CreateReminder(user_id="ada", task="Buy groceries", local_time="13:30")
    )

    assert reminder.time_zone == "Africa/Lagos"
    assert reminder.due_at == datetime(2024, 3, 5, 12, 30, tzinfo=UTC)
    assert reminder.due_at - lagos_clock.now == timedelta(hours=23, minutes=30)
    assert not reminder.is_recurring
    assert service.scheduler.is_armed(reminder.id)


@pytest.mark.asyncio
async def test_user_without_time_zone_defaults_to_utc(service) -> None:
    reminder = await service.create_reminder(
        CreateReminder(user_id="bob", task="stand up", local_time="13:30")
    )

    assert reminder.time_zone == "UTC"
    assert reminder.due_at == datetime(2024, 3, 4, 13, 30, tzinfo=UTC)


@pytest.mark.asyncio
async def test_invalid_time_zone_is_rejected_and_not_stored(service, store) -> None:
    await service.set_time_zone(SetTimeZone(user_id="ada", zone="Europe/Paris"))

    with pytest.raises(InvalidTimeZone):
        await service.set_time_zone(SetTimeZone(user_id="ada", zone="Mars/Colony"))

    assert await store.get_time_zone("ada") == "Europe/Paris"


@pytest.mark.asyncio
async def test_time_zone_change_only_affects_future_reminders(service) -> None:
    await service.set_time_zone(SetTimeZone(user_id="ada", zone="Africa/Lagos"))
    before = await service.create_reminder(CreateReminder(user_id="ada", task="call mum", local_time="18:00"))

    await service.set_time_zone(SetTimeZone(user_id="ada", zone="Asia/Tokyo"))
    after = await service.create_reminder(CreateReminder(user_id="ada", task="sleep", local_time="23:00"))

    listed = await service.list_reminders(ListReminders(user_id="ada"))
    assert [(r.task, r.time_zone, r.due_at) for r in listed] == [
        ("call mum", "Africa/Lagos", before.due_at),
        ("sleep", "Asia/Tokyo", after.due_at),
    ]
    assert before.due_at == datetime(2024, 3, 4, 17, 0, tzinfo=UTC)
    # 22:00 in Tokyo has passed, 23:00 has not
    assert after.due_at == datetime(2024, 3, 4, 14, 0, tzinfo=UTC)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "command, error",
    [
        (CreateReminder(user_id="ada", task="water plants", local_time="09:00", frequency="monthly"), InvalidFrequency),
        (CreateReminder(user_id="ada", task="water plants", local_time="25:00"), InvalidTimeFormat),
        (CreateReminder(user_id="ada", task="water plants", local_time="9am"), InvalidTimeFormat),
    ],
)
async def test_invalid_create_commands_store_nothing(service, store, command, error) -> None:
    with pytest.raises(error):
        await service.create_reminder(command)

    assert await store.find_by_user("ada") == []
    assert service.scheduler.armed_count == 0


@pytest.mark.asyncio
async def test_recurring_reminder_records_frequency(service) -> None:
    reminder = await service.create_reminder(
        CreateReminder(user_id="ada", task="stretch", local_time="07:00", frequency="Weekly")
    )

    assert reminder.frequency == Frequency.WEEKLY
    assert reminder.describe_schedule() == "every weekly"


@pytest.mark.asyncio
async def test_listing_returns_every_reminder_in_creation_order(service) -> None:
    tasks = [f"task {n}" for n in range(5)]
    for n, task in enumerate(tasks):
        await service.create_reminder(CreateReminder(user_id="ada", task=task, local_time=f"{10 + n}:00"))
    await service.create_reminder(CreateReminder(user_id="bob", task="not yours", local_time="10:00"))

    listed = await service.list_reminders(ListReminders(user_id="ada"))

    assert [reminder.task for reminder in listed] == tasks


@pytest.mark.asyncio
async def test_delete_by_position_removes_that_reminder(service) -> None:
    for task in ("first", "second", "third"):
        await service.create_reminder(CreateReminder(user_id="ada", task=task, local_time="20:00"))

    deleted = await service.delete_reminder(DeleteReminder(user_id="ada", position=2))

    assert deleted.task == "second"
    assert deleted.state == ReminderState.CANCELLED
    assert not service.scheduler.is_armed(deleted.id)
    listed = await service.list_reminders(ListReminders(user_id="ada"))
    assert [reminder.task for reminder in listed] == ["first", "third"]


@pytest.mark.asyncio
@pytest.mark.parametrize("position", [0, -1, 4])
async def test_delete_out_of_range_changes_nothing(service, position) -> None:
    for task in ("first", "second", "third"):
        await service.create_reminder(CreateReminder(user_id="ada", task=task, local_time="20:00"))

    with pytest.raises(IndexOutOfRange) as excinfo:
        await service.delete_reminder(DeleteReminder(user_id="ada", position=position))

    assert "3 reminder(s)" in excinfo.value.user_message
    assert len(await service.list_reminders(ListReminders(user_id="ada"))) == 3
    assert service.scheduler.armed_count == 3


@pytest.mark.asyncio
async def test_start_rearms_stored_reminders_and_stop_keeps_them(store, scheduler_config, lagos_clock) -> None:
    first = ReminderService(store, RecordingNotifier(), scheduler_config, clock=lagos_clock, sleep=never_wakes)
    await first.create_reminder(CreateReminder(user_id="ada", task="one", local_time="20:00"))
    await first.create_reminder(CreateReminder(user_id="ada", task="two", local_time="21:00", frequency="daily"))
    await first.scheduler.stop()

    async with ReminderService(
        store, RecordingNotifier(), scheduler_config, clock=lagos_clock, sleep=never_wakes
    ) as second:
        assert second.scheduler.armed_count == 2
        assert second.get_stats()["is_started"] is True

    assert second.scheduler.armed_count == 0
    assert len(await store.list_scheduled()) == 2


@pytest.mark.asyncio
async def test_start_skips_recovery_when_disabled(store, scheduler_config, lagos_clock) -> None:
    scheduler_config.recover_on_start = False
    seeded = ReminderService(store, RecordingNotifier(), scheduler_config, clock=lagos_clock, sleep=never_wakes)
    await seeded.create_reminder(CreateReminder(user_id="ada", task="one", local_time="20:00"))
    await seeded.scheduler.stop()

    service = ReminderService(store, RecordingNotifier(), scheduler_config, clock=lagos_clock, sleep=never_wakes)
    await service.start()

    assert service.scheduler.armed_count == 0
    await service.stop()

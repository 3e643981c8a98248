from datetime import datetime, timedelta, timezone

import pytest

from config.config import StorageBackend, StorageConfig
from remindly.models.errors import PersistenceError
from remindly.models.reminder import Frequency, Recurring, Reminder, ReminderState
from remindly.store import MemoryReminderStore, SqliteReminderStore, build_store

UTC = timezone.utc
DUE = datetime(2024, 5, 1, 9, 0, tzinfo=UTC)


def make_reminder(user_id: str, task: str, **kwargs) -> Reminder:
    return Reminder(
        user_id=user_id,
        task=task,
        local_time="09:00",
        time_zone=kwargs.pop("time_zone", "UTC"),
        due_at=kwargs.pop("due_at", DUE),
        **kwargs,
    )


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, tmp_path):
    if request.param == "memory":
        return MemoryReminderStore(warn=False)
    return SqliteReminderStore(StorageConfig(backend=StorageBackend.SQLITE, path=str(tmp_path / "reminders.db")))


@pytest.mark.asyncio
async def test_find_by_user_returns_creation_order(any_store) -> None:
    tasks = ["first", "second", "third", "fourth"]
    for task in tasks:
        await any_store.create(make_reminder("alice", task))
    await any_store.create(make_reminder("bob", "not alice's"))

    listed = await any_store.find_by_user("alice")

    assert [reminder.task for reminder in listed] == tasks
    assert all(reminder.user_id == "alice" for reminder in listed)


@pytest.mark.asyncio
async def test_find_by_user_without_reminders_is_empty(any_store) -> None:
    assert await any_store.find_by_user("nobody") == []


@pytest.mark.asyncio
async def test_get_round_trips_every_field(any_store) -> None:
    reminder = make_reminder(
        "alice",
        "stand up",
        time_zone="Africa/Lagos",
        schedule=Recurring(frequency=Frequency.WEEKLY),
    )
    assert await any_store.create(reminder) == reminder.id

    loaded = await any_store.get(reminder.id)

    assert loaded == reminder
    assert loaded.is_recurring and loaded.frequency == Frequency.WEEKLY
    assert await any_store.get("missing") is None


@pytest.mark.asyncio
async def test_delete_is_idempotent(any_store) -> None:
    reminder = make_reminder("alice", "once")
    await any_store.create(reminder)

    await any_store.delete(reminder.id)
    await any_store.delete(reminder.id)
    await any_store.delete("never-existed")

    assert await any_store.get(reminder.id) is None


@pytest.mark.asyncio
async def test_update_due_at(any_store) -> None:
    reminder = make_reminder("alice", "daily", schedule=Recurring(frequency=Frequency.DAILY))
    await any_store.create(reminder)
    later = DUE + timedelta(days=1)

    assert await any_store.update_due_at(reminder.id, later) is True
    assert (await any_store.get(reminder.id)).due_at == later
    assert await any_store.update_due_at("missing", later) is False


@pytest.mark.asyncio
async def test_list_scheduled_skips_other_states(any_store) -> None:
    live = make_reminder("alice", "live")
    cancelled = make_reminder("bob", "cancelled", state=ReminderState.CANCELLED)
    await any_store.create(live)
    await any_store.create(cancelled)

    assert [reminder.id for reminder in await any_store.list_scheduled()] == [live.id]


@pytest.mark.asyncio
async def test_time_zone_defaults_to_utc_and_upserts(any_store) -> None:
    assert await any_store.get_time_zone("alice") == "UTC"

    await any_store.set_time_zone("alice", "Africa/Lagos")
    await any_store.set_time_zone("alice", "Europe/London")

    assert await any_store.get_time_zone("alice") == "Europe/London"
    assert await any_store.get_time_zone("bob") == "UTC"


@pytest.mark.asyncio
async def test_time_zone_change_does_not_touch_existing_reminders(any_store) -> None:
    reminder = make_reminder("alice", "keep my zone", time_zone="Africa/Lagos")
    await any_store.create(reminder)

    await any_store.set_time_zone("alice", "Asia/Tokyo")

    assert (await any_store.get(reminder.id)).time_zone == "Africa/Lagos"


@pytest.mark.asyncio
async def test_store_returns_copies(store) -> None:
    reminder = make_reminder("alice", "copy")
    await store.create(reminder)

    loaded = await store.get(reminder.id)
    loaded.state = ReminderState.FIRED

    assert (await store.get(reminder.id)).state == ReminderState.SCHEDULED


@pytest.mark.asyncio
async def test_sqlite_store_is_durable_across_instances(tmp_path) -> None:
    config = StorageConfig(backend=StorageBackend.SQLITE, path=str(tmp_path / "nested" / "reminders.db"))
    first = SqliteReminderStore(config)
    reminder = make_reminder("alice", "survive a restart")
    await first.create(reminder)
    await first.set_time_zone("alice", "Africa/Lagos")

    second = SqliteReminderStore(config)

    assert await second.find_by_user("alice") == [reminder]
    assert await second.list_scheduled() == [reminder]
    assert await second.get_time_zone("alice") == "Africa/Lagos"
    assert await second.readiness() is True


@pytest.mark.asyncio
async def test_sqlite_backend_failure_raises_persistence_error(tmp_path) -> None:
    # The parent "directory" is a regular file, so the database cannot be created
    blocker = tmp_path / "not-a-directory"
    blocker.write_text("")
    broken = SqliteReminderStore(
        StorageConfig(backend=StorageBackend.SQLITE, path=str(blocker / "reminders.db"))
    )

    with pytest.raises(PersistenceError):
        await broken.create(make_reminder("alice", "lost"))
    with pytest.raises(PersistenceError):
        await broken.find_by_user("alice")
    assert await broken.readiness() is False


def test_build_store_selects_backend(tmp_path) -> None:
    assert isinstance(build_store(StorageConfig(backend=StorageBackend.MEMORY)), MemoryReminderStore)
    assert isinstance(
        build_store(StorageConfig(backend=StorageBackend.SQLITE, path=str(tmp_path / "r.db"))),
        SqliteReminderStore,
    )

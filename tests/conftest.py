import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple

import pytest

from config.config import CatchUpPolicy, SchedulerConfig
from remindly.models.errors import DeliveryFailure
from remindly.store.memory import MemoryReminderStore


UTC = timezone.utc


class FakeClock:
    """Clock whose sleep jumps time forward instead of waiting."""

    def __init__(self, now: datetime):
        self.now = now
        self.sleeps: List[float] = []

    def __call__(self) -> datetime:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += timedelta(seconds=seconds)
        await asyncio.sleep(0)


async def never_wakes(seconds: float) -> None:  # noqa: ARG001
    """Sleep that parks the timer until it is cancelled."""
    await asyncio.Event().wait()


class RecordingNotifier:
    """Notifier that records deliveries and can fail or stall on demand."""

    def __init__(
        self,
        clock: Optional[Callable[[], datetime]] = None,
        fail_times: int = 0,
        block_after: Optional[int] = None,
    ):
        self.clock = clock
        self.fail_times = fail_times
        self.block_after = block_after
        self.attempts = 0
        self.deliveries: List[Tuple[str, str, Optional[datetime]]] = []
        self.blocked = asyncio.Event()

    async def deliver(self, user_id: str, task: str) -> None:
        self.attempts += 1
        if self.attempts <= self.fail_times:
            raise DeliveryFailure("channel down")
        if self.block_after is not None and len(self.deliveries) >= self.block_after:
            self.blocked.set()
            await asyncio.Event().wait()
        self.deliveries.append((user_id, task, self.clock() if self.clock else None))


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the event loop until predicate() is true."""
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(_poll(), timeout)


@pytest.fixture
def store() -> MemoryReminderStore:
    return MemoryReminderStore(warn=False)


@pytest.fixture
def scheduler_config() -> SchedulerConfig:
    return SchedulerConfig(
        delivery_attempts=3,
        persist_attempts=3,
        retry_delay_seconds=0,
        catch_up_policy=CatchUpPolicy.SKIP_MISSED,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 3, 4, 8, 0, tzinfo=UTC))

import asyncio
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, List, Optional

from aiosqlite import Connection as SQLiteConnection, Error as SQLiteError, connect as sqlite_connect
from pydantic import ValidationError

from config.config import StorageConfig
from remindly.models.errors import PersistenceError
from remindly.models.reminder import DEFAULT_TIME_ZONE, Reminder, ReminderState
from remindly.store.istore import ReminderStore
from remindly.utils.logger import log_debug, log_error, log_info

REMINDERS_TABLE = "reminders"
TIME_ZONES_TABLE = "user_time_zones"


class SqliteReminderStore(ReminderStore):
    """
    Reminder store backed by a SQLite file.

    Reminders are stored as JSON documents next to the few columns we query on.
    The autoincrement `seq` column keeps creation order for per-user listings.
    """

    _config: StorageConfig

    def __init__(self, config: StorageConfig):
        log_info(f"Using SQLite reminder store at {config.path}")
        self._config = config
        self._initialized = False
        self._lock = asyncio.Lock()

    async def readiness(self) -> bool:
        """
        Check the database is reachable and can be queried.
        """
        try:
            async with self._use_db() as db:
                await db.execute("SELECT 1")
            return True
        except PersistenceError as e:
            log_error(f"Error requesting SQLite, {e.__cause__}")
        return False

    async def create(self, reminder: Reminder) -> str:
        data = reminder.model_dump_json()
        log_debug(f"Saving reminder {reminder.id}: {data}")
        async with self._lock, self._use_db() as db:
            await db.execute(
                f"INSERT INTO {REMINDERS_TABLE} (id, user_id, state, data) VALUES (?, ?, ?, ?)",
                (
                    reminder.id,  # id
                    reminder.user_id,  # user_id
                    reminder.state.value,  # state
                    data,  # data
                ),
            )
            await db.commit()
        return reminder.id

    async def get(self, reminder_id: str) -> Optional[Reminder]:
        log_debug(f"Loading reminder {reminder_id}")
        async with self._use_db() as db:
            cursor = await db.execute(
                f"SELECT data FROM {REMINDERS_TABLE} WHERE id = ?",
                (reminder_id,),
            )
            row = await cursor.fetchone()
        return self._parse(row[0]) if row else None

    async def find_by_user(self, user_id: str) -> List[Reminder]:
        async with self._use_db() as db:
            cursor = await db.execute(
                f"SELECT data FROM {REMINDERS_TABLE} WHERE user_id = ? ORDER BY seq ASC",
                (user_id,),
            )
            rows = await cursor.fetchall()
        return self._parse_rows(rows)

    async def list_scheduled(self) -> List[Reminder]:
        async with self._use_db() as db:
            cursor = await db.execute(
                f"SELECT data FROM {REMINDERS_TABLE} WHERE state = ? ORDER BY seq ASC",
                (ReminderState.SCHEDULED.value,),
            )
            rows = await cursor.fetchall()
        return self._parse_rows(rows)

    async def update_due_at(self, reminder_id: str, due_at: datetime) -> bool:
        async with self._lock, self._use_db() as db:
            cursor = await db.execute(
                f"SELECT data FROM {REMINDERS_TABLE} WHERE id = ?",
                (reminder_id,),
            )
            row = await cursor.fetchone()
            reminder = self._parse(row[0]) if row else None
            if reminder is None:
                return False
            updated = reminder.model_copy(
                update={"due_at": due_at.astimezone(timezone.utc), "state": ReminderState.SCHEDULED}
            )
            await db.execute(
                f"UPDATE {REMINDERS_TABLE} SET state = ?, data = ? WHERE id = ?",
                (updated.state.value, updated.model_dump_json(), reminder_id),
            )
            await db.commit()
        return True

    async def delete(self, reminder_id: str) -> None:
        log_debug(f"Deleting reminder {reminder_id}")
        async with self._lock, self._use_db() as db:
            await db.execute(f"DELETE FROM {REMINDERS_TABLE} WHERE id = ?", (reminder_id,))
            await db.commit()

    async def set_time_zone(self, user_id: str, time_zone: str) -> None:
        async with self._lock, self._use_db() as db:
            await db.execute(
                f"INSERT INTO {TIME_ZONES_TABLE} (user_id, time_zone, updated_at) VALUES (?, ?, ?) "
                "ON CONFLICT(user_id) DO UPDATE SET time_zone = excluded.time_zone, updated_at = excluded.updated_at",
                (user_id, time_zone, datetime.now(timezone.utc).isoformat()),
            )
            await db.commit()

    async def get_time_zone(self, user_id: str) -> str:
        async with self._use_db() as db:
            cursor = await db.execute(
                f"SELECT time_zone FROM {TIME_ZONES_TABLE} WHERE user_id = ?",
                (user_id,),
            )
            row = await cursor.fetchone()
        return row[0] if row else DEFAULT_TIME_ZONE

    @staticmethod
    def _parse(data: str) -> Optional[Reminder]:
        try:
            return Reminder.model_validate_json(data)
        except ValidationError as e:
            log_error(f"Skipping unreadable reminder record: {e.errors()}")
            return None

    def _parse_rows(self, rows) -> List[Reminder]:
        reminders = []
        for row in rows:
            reminder = self._parse(row[0])
            if reminder:
                reminders.append(reminder)
        return reminders

    async def _init_db(self, db: SQLiteConnection) -> None:
        """
        Initialize the database.

        See: https://sqlite.org/wal.html
        """
        log_info("First run, init reminder database")
        # Readers do not block the writer
        await db.execute("PRAGMA journal_mode=WAL")
        await db.execute(
            f"CREATE TABLE IF NOT EXISTS {REMINDERS_TABLE} ("
            "seq INTEGER PRIMARY KEY AUTOINCREMENT, "
            "id VARCHAR(32) NOT NULL UNIQUE, "
            "user_id TEXT NOT NULL, "
            "state TEXT NOT NULL, "
            "data TEXT NOT NULL)"
        )
        await db.execute(
            f"CREATE INDEX IF NOT EXISTS {REMINDERS_TABLE}_user_id ON {REMINDERS_TABLE} (user_id, seq)"
        )
        await db.execute(
            f"CREATE INDEX IF NOT EXISTS {REMINDERS_TABLE}_state ON {REMINDERS_TABLE} (state)"
        )
        await db.execute(
            f"CREATE TABLE IF NOT EXISTS {TIME_ZONES_TABLE} ("
            "user_id TEXT PRIMARY KEY, "
            "time_zone TEXT NOT NULL, "
            "updated_at TEXT NOT NULL)"
        )
        await db.commit()
        self._initialized = True

    @asynccontextmanager
    async def _use_db(self) -> AsyncGenerator[SQLiteConnection, None]:
        """
        Open a connection, create the schema on first use, close it after use.

        Backend failures are raised as PersistenceError.
        """
        try:
            db_folder = os.path.dirname(os.path.abspath(self._config.path))
            os.makedirs(name=db_folder, exist_ok=True)
            async with sqlite_connect(database=self._config.path) as db:
                if not self._initialized:
                    await self._init_db(db)
                yield db
        except (SQLiteError, OSError) as e:
            log_error(f"SQLite reminder store failure: {e}")
            raise PersistenceError() from e

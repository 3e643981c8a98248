"""Reminder persistence backends."""

from config.config import StorageBackend, StorageConfig
from remindly.store.istore import ReminderStore
from remindly.store.memory import MemoryReminderStore
from remindly.store.sqlite import SqliteReminderStore


def build_store(config: StorageConfig) -> ReminderStore:
    """Create the store selected in configuration."""
    if config.backend == StorageBackend.MEMORY:
        return MemoryReminderStore()
    return SqliteReminderStore(config)


__all__ = [
    'ReminderStore',
    'MemoryReminderStore',
    'SqliteReminderStore',
    'build_store',
]

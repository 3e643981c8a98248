"""Abstract reminder store."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from remindly.models.reminder import Reminder


class ReminderStore(ABC):
    """Durable CRUD over reminders plus per-user timezone preferences.

    Every backend failure is raised as PersistenceError.
    """

    @abstractmethod
    async def readiness(self) -> bool:
        pass

    @abstractmethod
    async def create(self, reminder: Reminder) -> str:
        pass

    @abstractmethod
    async def get(self, reminder_id: str) -> Optional[Reminder]:
        pass

    @abstractmethod
    async def find_by_user(self, user_id: str) -> List[Reminder]:
        """Reminders of a user in creation order (empty list when none)."""

    @abstractmethod
    async def list_scheduled(self) -> List[Reminder]:
        """Every reminder still waiting to fire, across users."""

    @abstractmethod
    async def update_due_at(self, reminder_id: str, due_at: datetime) -> bool:
        """Persist a new due instant. Returns False if the record is gone."""

    @abstractmethod
    async def delete(self, reminder_id: str) -> None:
        """Remove a reminder. Deleting an unknown id is a no-op."""

    @abstractmethod
    async def set_time_zone(self, user_id: str, time_zone: str) -> None:
        """Upsert the zone used for a user's future reminders."""

    @abstractmethod
    async def get_time_zone(self, user_id: str) -> str:
        """The user's zone, or UTC when never set."""

    async def close(self) -> None:
        pass

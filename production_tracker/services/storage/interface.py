"""
Abstract Remote Table Interface

DESIGN DECISION: The remote records table sits behind an abstract
interface. The RecordStore only talks to this interface, so:
1. Google Sheets can be swapped for a real database later
2. Tests run against an in-memory table
3. The sync logic stays free of backend details

The interface is intentionally small: select-all, insert, delete, and a
change-notification hook. Everything else (merge, ordering, fallbacks) is
the RecordStore's job.
"""

from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Iterable, Optional

from production_tracker.models.record import InstallationRecord


ChangeCallback = Callable[[], Awaitable[None]]


class RecordTableInterface(ABC):
    """
    Abstract interface for the remote records table.

    All methods raise StorageError subclasses on failure; callers decide
    how to degrade.
    """

    @abstractmethod
    async def fetch_all(self, user_id: Optional[str] = None) -> list[InstallationRecord]:
        """
        Fetch every record owned by `user_id`.

        Returns:
            Records ordered by creation timestamp ascending, all marked SYNCED
        """
        pass

    @abstractmethod
    async def insert_many(self, records: list[InstallationRecord]) -> None:
        """
        Insert one or more records in a single call.

        Raises:
            RemoteServiceError: If the backend rejects the rows
            RemoteUnavailableError: If the backend can't be reached
        """
        pass

    @abstractmethod
    async def delete(self, record_id: str, user_id: Optional[str] = None) -> bool:
        """
        Delete a record by ID.

        Returns:
            True if a row was removed, False if no row matched
        """
        pass

    @abstractmethod
    async def delete_many(self, record_ids: Iterable[str], user_id: Optional[str] = None) -> int:
        """
        Delete several records by ID.

        Returns:
            Number of rows removed
        """
        pass

    @abstractmethod
    async def delete_all(self, user_id: str) -> int:
        """Delete every record owned by `user_id`. Returns rows removed."""
        pass

    @abstractmethod
    async def ping(self) -> bool:
        """Cheap reachability check. Returns False instead of raising."""
        pass

    @abstractmethod
    def watch(self, callback: ChangeCallback) -> Callable[[], None]:
        """
        Call `callback` whenever the table changes (insert/update/delete by
        any source).

        Returns:
            A function that stops watching
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class RemoteUnavailableError(StorageError):
    """Could not reach the remote backend (no network path, timeouts)."""
    pass


class RemoteServiceError(StorageError):
    """The backend answered but reported an error (auth, constraint...)."""
    pass

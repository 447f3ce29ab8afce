# plugin_jobs/models/store.py
"""
Job store protocol definition.

Defines the whole-collection repository interface that both JsonFileJobStore
and SQLiteJobStore implement. Stores never apply partial updates: callers
load everything, mutate in memory and save everything back.
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING, AsyncIterator, Protocol

if TYPE_CHECKING:
    from plugin_jobs.models.jobs import JobRecord


class StoreSession(Protocol):
    """Load/save handle valid inside JobStore.transaction()."""

    async def load_all(self) -> "list[JobRecord]": ...

    async def save_all(self, records: "list[JobRecord]") -> None: ...


class JobStore(ABC):
    """
    Abstract base class for durable job collection storage.

    Only JobQueue may call these methods.
    """

    async def initialize(self) -> None:
        """Prepare the underlying resource (directories, schema)."""

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[StoreSession]:
        """
        Hold exclusive write access for one load-mutate-save cycle.

        Other processes opening the same resource block until the block
        exits, so a load inside the block sees every earlier save and no
        one else saves before this one.

        Yields:
            Session whose load_all/save_all run under the exclusive hold

        Raises:
            StoreWriteError: If exclusive access could not be obtained
        """
        yield self

    @abstractmethod
    async def load_all(self) -> "list[JobRecord]":
        """
        Load the full job collection.

        Returns:
            All JobRecords in insertion order; empty list if the resource
            is missing or empty

        Raises:
            StoreCorruptError: If the stored content cannot be deserialized
        """

    @abstractmethod
    async def save_all(self, records: "list[JobRecord]") -> None:
        """
        Atomically replace the full job collection.

        Args:
            records: Complete collection in insertion order

        Raises:
            StoreWriteError: If the write failed (previous version left intact)
        """

    async def quarantine(self) -> Path | None:
        """
        Move an unreadable resource aside so a fresh one can be started.

        Returns:
            Path of the backup, or None if there was nothing to move
        """
        return None

    async def close(self) -> None:
        """Release resources held by the store."""

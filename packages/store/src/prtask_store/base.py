"""Abstract storage substrate.

Every backend (JSON files, SQLite, in-memory) stores a handful of JSON
documents per target: the task list, the extraction checkpoint and the
extraction cache. TaskStore, CheckpointStore and CacheStore depend on
BaseStore only, so reconciliation logic can be exercised against
MemoryStore without touching the filesystem.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

TASKS = "tasks"
CHECKPOINT = "checkpoint"
CACHE = "cache"


class StorageIOError(Exception):
    """A read or write against the storage substrate failed.

    Fatal for the current run. Backends guarantee that whatever was
    durably written before the failure is still intact.
    """


class BaseStore(ABC):
    """Addressable-by-target document store.

    put() must be durable when it returns: a crash after put() returns
    never loses that write, and a crash during put() leaves the previous
    value in place.
    """

    @abstractmethod
    def get(self, target: str, name: str) -> Any | None:
        """Return the stored document, or None if it does not exist."""

    @abstractmethod
    def put(self, target: str, name: str, value: Any) -> None:
        """Durably replace the document."""

    @abstractmethod
    def delete(self, target: str, name: str) -> None:
        """Remove the document. Deleting a missing document is not an error."""

    @abstractmethod
    def list_targets(self) -> list[str]:
        """Return every target holding at least one document, sorted."""

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Default is a no-op so callers can always call close() safely.
        """

"""
Remote store contract.

The remote store is a set of row collections addressed by primary key. All
writes must be idempotent: re-applying an upsert or delete leaves the same end
state as applying it once, so the sync executor can safely retry an operation
whose outcome was ambiguous.
"""

from abc import ABC, abstractmethod
from typing import Any

# Collection name -> primary key column
COLLECTION_KEYS: dict[str, str] = {
    "chat_threads": "id",
    "chat_messages": "id",
    "chat_drafts": "thread_id",
    "layout_borders": "border_id",
    "graph_documents": "id",
}


class RemoteWriteError(Exception):
    """A remote read or write failed (network error or backend rejection)."""


class UnknownCollectionError(RemoteWriteError):
    """The collection is not part of the remote schema."""


def key_column(collection: str) -> str:
    """Return the primary key column for ``collection``.

    Raises:
        UnknownCollectionError: If the collection is not known
    """
    try:
        return COLLECTION_KEYS[collection]
    except KeyError:
        raise UnknownCollectionError(f"Unknown collection: {collection}")


def row_key(collection: str, row: dict[str, Any]) -> str:
    """Extract the primary key value from a row."""
    column = key_column(collection)
    if row.get(column) is None:
        raise ValueError(f"{collection} row is missing its key column {column!r}")
    return str(row[column])


class RemoteStore(ABC):
    """Upsert/update/delete by primary key over the remote collections."""

    @abstractmethod
    async def upsert(self, collection: str, row: dict[str, Any]) -> None:
        """
        Insert the row or merge its columns into the existing row.

        Raises:
            RemoteWriteError: If the write fails
        """

    @abstractmethod
    async def update(self, collection: str, key: str, fields: dict[str, Any]) -> None:
        """
        Merge ``fields`` into an existing row. A missing row is not an error.

        Raises:
            RemoteWriteError: If the write fails
        """

    @abstractmethod
    async def delete(self, collection: str, key: str) -> None:
        """
        Delete the row if present.

        Raises:
            RemoteWriteError: If the write fails
        """

    @abstractmethod
    async def select(self, collection: str) -> list[dict[str, Any]]:
        """
        Return every row in ``collection``.

        Raises:
            RemoteWriteError: If the read fails
        """

    @abstractmethod
    async def health_check(self) -> bool:
        """Return True when the store is reachable."""

    async def close(self) -> None:
        """Release any underlying connections."""


class UnconfiguredStore(RemoteStore):
    """Stand-in used when no remote is configured.

    Every write fails, so operations stay queued until a real store is set up.
    """

    async def upsert(self, collection: str, row: dict[str, Any]) -> None:
        raise RemoteWriteError("No remote store configured")

    async def update(self, collection: str, key: str, fields: dict[str, Any]) -> None:
        raise RemoteWriteError("No remote store configured")

    async def delete(self, collection: str, key: str) -> None:
        raise RemoteWriteError("No remote store configured")

    async def select(self, collection: str) -> list[dict[str, Any]]:
        raise RemoteWriteError("No remote store configured")

    async def health_check(self) -> bool:
        return False

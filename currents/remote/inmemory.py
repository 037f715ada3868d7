"""In-memory remote store.

Behaves like the store proxy (merge-on-upsert, idempotent delete) and can be
told to fail upcoming calls, which makes it the backbone of the sync tests.
"""

import copy
import logging
from dataclasses import dataclass
from typing import Any

from currents.remote.base import RemoteStore, RemoteWriteError, key_column, row_key

logger = logging.getLogger(__name__)


@dataclass
class StoreCall:
    """One call received by the store, recorded whether or not it succeeded."""

    method: str
    collection: str
    key: str
    data: dict[str, Any] | None = None
    succeeded: bool = True


class InMemoryRemoteStore(RemoteStore):
    def __init__(self):
        self.tables: dict[str, dict[str, dict[str, Any]]] = {}
        self.calls: list[StoreCall] = []
        self.healthy = True
        self._fail_next = 0
        self._fail_keys: set[str] = set()

    def fail_next(self, count: int = 1) -> None:
        """Make the next ``count`` write calls raise ``RemoteWriteError``."""
        self._fail_next += count

    def fail_key(self, key: str) -> None:
        """Make every write addressed to ``key`` fail until ``heal_key``."""
        self._fail_keys.add(key)

    def heal_key(self, key: str) -> None:
        self._fail_keys.discard(key)

    def rows(self, collection: str) -> dict[str, dict[str, Any]]:
        return self.tables.setdefault(collection, {})

    def _check(self, call: StoreCall) -> None:
        key_column(call.collection)
        self.calls.append(call)

        if self._fail_next > 0:
            self._fail_next -= 1
            call.succeeded = False
            raise RemoteWriteError(f"Injected failure for {call.method} {call.key}")
        if call.key in self._fail_keys:
            call.succeeded = False
            raise RemoteWriteError(f"Rejected write for {call.key}")

    async def upsert(self, collection: str, row: dict[str, Any]) -> None:
        key = row_key(collection, row)
        self._check(StoreCall("upsert", collection, key, copy.deepcopy(row)))

        table = self.rows(collection)
        table[key] = {**table.get(key, {}), **copy.deepcopy(row)}

    async def update(self, collection: str, key: str, fields: dict[str, Any]) -> None:
        self._check(StoreCall("update", collection, key, copy.deepcopy(fields)))

        table = self.rows(collection)
        if key not in table:
            logger.debug(f"Update of missing {collection}/{key} ignored")
            return
        table[key] = {**table[key], **copy.deepcopy(fields)}

    async def delete(self, collection: str, key: str) -> None:
        self._check(StoreCall("delete", collection, key))
        self.rows(collection).pop(key, None)

    async def select(self, collection: str) -> list[dict[str, Any]]:
        key_column(collection)
        if not self.healthy:
            raise RemoteWriteError("Store unavailable")
        return [copy.deepcopy(row) for row in self.rows(collection).values()]

    async def health_check(self) -> bool:
        return self.healthy

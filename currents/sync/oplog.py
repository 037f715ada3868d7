"""Durable FIFO log of pending remote writes.

The whole log is serialized and stored in a single call on every change, so
a crash can lose at most the write that was in progress, never reorder or
partially apply the stored log.
"""

import json
import logging
from typing import Iterator

from currents.sync.operations import PendingOperation
from currents.sync.storage import KeyValueStorage, StorageError

logger = logging.getLogger(__name__)

PENDING_OPS_KEY = "pending_ops_v1"
DEAD_LETTER_KEY = "dead_letter_ops_v1"


class OperationLog:
    """Ordered, persisted list of ``PendingOperation``.

    Operations are kept in the order they were enqueued. Nothing here ever
    reorders entries; consumers take from the head only.
    """

    def __init__(self, storage: KeyValueStorage, key: str = PENDING_OPS_KEY):
        """Initialize and load the log.

        Args:
            storage: Durable key/value storage backing the log
            key: Storage key holding the serialized log
        """
        self.storage = storage
        self.key = key
        self._ops: list[PendingOperation] = self._load()

    def _load(self) -> list[PendingOperation]:
        try:
            raw = self.storage.get(self.key)
        except StorageError as e:
            logger.warning(f"Failed to read operation log {self.key}: {e}")
            return []

        if not raw:
            return []

        try:
            data = json.loads(raw)
            if not isinstance(data, list):
                logger.warning(f"Ignoring malformed operation log {self.key}")
                return []
            ops = [PendingOperation.from_dict(entry) for entry in data]
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Failed to parse operation log {self.key}: {e}")
            return []

        logger.debug(f"Loaded {len(ops)} pending operations from {self.key}")
        return ops

    def _save(self) -> None:
        payload = json.dumps([op.to_dict() for op in self._ops])
        try:
            self.storage.set(self.key, payload)
        except StorageError as e:
            # The in-memory log stays authoritative until the next successful save
            logger.warning(f"Failed to persist operation log {self.key}: {e}")

    def enqueue(self, op: PendingOperation) -> None:
        """Append an operation to the tail and persist the log."""
        self._ops.append(op)
        self._save()
        logger.debug(f"Enqueued {op.type.value} ({op.id}); depth={len(self._ops)}")

    def peek_head(self) -> PendingOperation | None:
        """Return the oldest operation without removing it."""
        return self._ops[0] if self._ops else None

    def dequeue_head(self) -> PendingOperation | None:
        """Remove and return the oldest operation, persisting the shorter log."""
        if not self._ops:
            return None
        op = self._ops.pop(0)
        self._save()
        return op

    def replace_head(self, op: PendingOperation) -> None:
        """Overwrite the head entry (same operation id) and persist."""
        if not self._ops or self._ops[0].id != op.id:
            raise ValueError(f"Operation {op.id} is not at the head of the log")
        self._ops[0] = op
        self._save()

    def clear(self) -> list[PendingOperation]:
        """Remove every entry, returning what was removed."""
        removed, self._ops = self._ops, []
        self._save()
        return removed

    def __len__(self) -> int:
        return len(self._ops)

    def __iter__(self) -> Iterator[PendingOperation]:
        return iter(list(self._ops))

    def __bool__(self) -> bool:
        return bool(self._ops)

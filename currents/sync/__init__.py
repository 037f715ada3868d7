"""Offline-tolerant synchronization of local mutations to the remote store."""

from currents.sync.connectivity import Connectivity
from currents.sync.executor import DrainResult, ImmediateResult, SyncExecutor
from currents.sync.operations import OperationType, PendingOperation
from currents.sync.oplog import OperationLog
from currents.sync.storage import (
    FileStorage,
    InMemoryStorage,
    KeyValueStorage,
    StorageError,
)

__all__ = [
    "Connectivity",
    "DrainResult",
    "ImmediateResult",
    "SyncExecutor",
    "OperationType",
    "PendingOperation",
    "OperationLog",
    "FileStorage",
    "InMemoryStorage",
    "KeyValueStorage",
    "StorageError",
]

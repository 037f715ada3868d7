"""Remote store adapters.

- RemoteStore: upsert/update/delete-by-key contract used by the sync executor
- RemoteStoreClient: httpx client for the store proxy
- InMemoryRemoteStore: process-local store with failure injection
"""

from currents.remote.base import (
    COLLECTION_KEYS,
    RemoteStore,
    RemoteWriteError,
    UnconfiguredStore,
    UnknownCollectionError,
)
from currents.remote.client import RemoteStoreClient
from currents.remote.inmemory import InMemoryRemoteStore

__all__ = [
    "COLLECTION_KEYS",
    "RemoteStore",
    "RemoteWriteError",
    "UnconfiguredStore",
    "UnknownCollectionError",
    "RemoteStoreClient",
    "InMemoryRemoteStore",
]

"""Shared fixtures for currents tests."""

import pytest

from currents.chat.tree import ConversationTree
from currents.remote.inmemory import InMemoryRemoteStore
from currents.sync.connectivity import Connectivity
from currents.sync.executor import SyncExecutor
from currents.sync.oplog import OperationLog
from currents.sync.storage import InMemoryStorage


@pytest.fixture
def storage():
    """Process-local key/value storage."""
    return InMemoryStorage()


@pytest.fixture
def remote():
    """In-memory remote store with failure injection."""
    return InMemoryRemoteStore()


@pytest.fixture
def connectivity():
    """Connectivity flag that starts offline."""
    return Connectivity(online=False)


@pytest.fixture
def oplog(storage):
    return OperationLog(storage)


@pytest.fixture
def executor(remote, oplog, connectivity):
    """Executor over the in-memory store, starting offline."""
    return SyncExecutor(store=remote, log=oplog, connectivity=connectivity)


@pytest.fixture
def tree(executor):
    """Conversation tree wired to the offline executor."""
    return ConversationTree(sync=executor)

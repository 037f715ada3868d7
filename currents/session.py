"""Application session: wires storage, sync and the conversation tree.

A ``ChatSession`` is constructed once at startup and owns the single
operation log for that session. Components that need to enqueue or drain get
it by reference from here rather than from module-level state.
"""

import json
import logging
from typing import Any

from currents.chat.tree import ConversationTree
from currents.config import Settings
from currents.layout import LayoutPersistence
from currents.remote.base import RemoteStore, RemoteWriteError, UnconfiguredStore
from currents.remote.client import RemoteStoreClient
from currents.sync.connectivity import Connectivity
from currents.sync.executor import DrainResult, SyncExecutor
from currents.sync.oplog import DEAD_LETTER_KEY, OperationLog
from currents.sync.storage import FileStorage, KeyValueStorage, StorageError

logger = logging.getLogger(__name__)

SNAPSHOT_KEY = "conversation_tree_v1"


class ChatSession:
    def __init__(
        self,
        storage: KeyValueStorage,
        store: RemoteStore,
        connectivity: Connectivity,
        executor: SyncExecutor,
        tree: ConversationTree,
    ):
        self.storage = storage
        self.store = store
        self.connectivity = connectivity
        self.executor = executor
        self.tree = tree
        self.layout = LayoutPersistence(executor)

    @classmethod
    def open(
        cls,
        settings: Settings | None = None,
        remote: RemoteStore | None = None,
        storage: KeyValueStorage | None = None,
        online: bool | None = None,
    ) -> "ChatSession":
        """Build a session from settings.

        Args:
            settings: Configuration (defaults to environment)
            remote: Remote store override; by default a client for
                ``settings.remote_url``, or an offline stand-in if unset
            storage: Durable storage override; by default files under
                ``settings.data_dir``
            online: Initial connectivity; defaults to whether a remote exists
        """
        settings = settings or Settings()
        storage = storage or FileStorage(settings.data_dir)

        if remote is None:
            if settings.remote_configured:
                remote = RemoteStoreClient(
                    settings.remote_url,
                    token=settings.auth_token,
                    timeout=settings.request_timeout,
                    verify_ssl=settings.verify_ssl,
                )
            else:
                logger.info("No remote store configured; changes stay queued locally")
                remote = UnconfiguredStore()

        if online is None:
            online = not isinstance(remote, UnconfiguredStore)
        connectivity = Connectivity(online=online)

        executor = SyncExecutor(
            store=remote,
            log=OperationLog(storage),
            connectivity=connectivity,
            dead_letters=OperationLog(storage, DEAD_LETTER_KEY),
            max_attempts=settings.max_attempts,
        )
        tree = cls._load_tree(storage, executor)
        return cls(storage, remote, connectivity, executor, tree)

    @staticmethod
    def _load_tree(storage: KeyValueStorage, executor: SyncExecutor) -> ConversationTree:
        try:
            raw = storage.get(SNAPSHOT_KEY)
            if raw:
                return ConversationTree.from_snapshot(json.loads(raw), sync=executor)
        except (StorageError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Failed to restore conversation snapshot: {e}")
        return ConversationTree(sync=executor)

    def save_snapshot(self) -> None:
        try:
            self.storage.set(SNAPSHOT_KEY, json.dumps(self.tree.snapshot()))
        except StorageError as e:
            logger.error(f"Failed to save conversation snapshot: {e}")
            raise

    @property
    def pending_count(self) -> int:
        return self.executor.pending_count

    def go_online(self) -> None:
        self.connectivity.set_online(True)

    def go_offline(self) -> None:
        self.connectivity.set_online(False)

    async def refresh_connectivity(self) -> bool:
        return await self.connectivity.probe(self.store)

    async def drain(self) -> DrainResult:
        return await self.executor.drain()

    async def hydrate(self) -> bool:
        """Replace local chat state with the remote rows.

        Skipped while local writes are still pending, since the remote copy
        would not include them yet.

        Returns:
            True if local state was replaced
        """
        await self.executor.wait_idle()
        await self.executor.drain()
        if self.executor.pending_count:
            logger.warning(
                f"Not hydrating: {self.executor.pending_count} local writes pending"
            )
            return False

        try:
            threads = await self.store.select("chat_threads")
            messages = await self.store.select("chat_messages")
            drafts = await self.store.select("chat_drafts")
        except RemoteWriteError as e:
            logger.warning(f"Hydration failed: {e}")
            return False

        self.tree.load(threads, messages, drafts)
        return True

    def status(self) -> dict[str, Any]:
        head = self.executor.log.peek_head()
        dead_letters = self.executor.dead_letters
        return {
            "online": self.connectivity.is_online,
            "pending": self.executor.pending_count,
            "dead_letters": len(dead_letters) if dead_letters is not None else 0,
            "head": head.to_dict() if head else None,
            "threads": len(self.tree.threads),
            "messages": len(self.tree.messages),
        }

    async def close(self) -> None:
        """Finish scheduled writes, persist the tree and release the store."""
        await self.executor.wait_idle()
        self.save_snapshot()
        await self.store.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

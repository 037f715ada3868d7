"""Thread metadata and draft registry.

Thin key/value layer over threads and drafts. Every write is mirrored to the
remote store through the same sync path as message mutations; the last write
for a key wins.
"""

import logging
import uuid
from typing import TYPE_CHECKING, Any

from currents.chat.exceptions import NotFoundError
from currents.chat.models import DEFAULT_THREAD_TITLE, ChatThread, Draft, utc_now
from currents.sync.operations import OperationType

if TYPE_CHECKING:
    from currents.sync.executor import SyncExecutor

logger = logging.getLogger(__name__)


class ThreadRegistry:
    def __init__(self, sync: "SyncExecutor | None" = None):
        """
        Args:
            sync: Executor receiving remote writes. None keeps state local only.
        """
        self.sync = sync
        self.threads: dict[str, ChatThread] = {}
        self.drafts: dict[str, Draft] = {}

    def emit(self, op_type: OperationType, payload: dict[str, Any]) -> None:
        if self.sync is not None:
            self.sync.schedule(op_type, payload)

    # ------------------------------------------------------------------
    # Threads
    # ------------------------------------------------------------------

    def create_thread(
        self, title: str = DEFAULT_THREAD_TITLE, thread_id: str | None = None
    ) -> ChatThread:
        thread = ChatThread(id=thread_id or str(uuid.uuid4()), title=title)
        self.threads[thread.id] = thread
        self.emit(OperationType.UPSERT_THREAD, thread.to_row())
        logger.debug(f"Created thread {thread.id}")
        return thread

    def get_thread(self, thread_id: str) -> ChatThread | None:
        return self.threads.get(thread_id)

    def require_thread(self, thread_id: str) -> ChatThread:
        thread = self.threads.get(thread_id)
        if thread is None:
            raise NotFoundError(f"Thread not found: {thread_id}")
        return thread

    def list_threads(self) -> list[ChatThread]:
        """Threads in creation order."""
        return sorted(self.threads.values(), key=lambda t: t.created_at)

    def set_title(self, thread_id: str, title: str) -> ChatThread:
        thread = self.require_thread(thread_id)
        thread.title = title
        self.publish_thread(thread)
        return thread

    def publish_thread(self, thread: ChatThread) -> None:
        """Stamp the thread as updated and mirror it remotely."""
        thread.updated_at = utc_now()
        self.emit(OperationType.UPSERT_THREAD, thread.to_row())

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------

    def get_draft(self, thread_id: str) -> str:
        draft = self.drafts.get(thread_id)
        return draft.text if draft else ""

    def set_draft(self, thread_id: str, text: str) -> Draft:
        self.require_thread(thread_id)
        draft = Draft(thread_id=thread_id, text=text)
        self.drafts[thread_id] = draft
        self.emit(OperationType.UPSERT_DRAFT, draft.to_row())
        return draft

    def clear_draft(self, thread_id: str) -> None:
        self.require_thread(thread_id)
        self.drafts.pop(thread_id, None)
        self.emit(OperationType.DELETE_DRAFT, {"thread_id": thread_id})

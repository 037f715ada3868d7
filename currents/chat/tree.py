"""Branching conversation tree.

Messages live in an id-indexed table (``messages``); each one records its
``parent_id`` (immutable history) and the ids of its ``children``. Threads
record navigation intent separately: ``selected_root_child`` and
``selected_child_by_message_id`` say which sibling branch is being viewed, and
``leaf_message_id`` is the tip of that selected path.

Adding a message never rewrites history elsewhere in the tree. It only moves
the selection to the new message, so regenerating a reply keeps the previous
reply reachable as a sibling.

Every mutation updates local state synchronously, then hands the matching
remote write to the sync executor without waiting for it.
"""

import logging
import uuid
from typing import TYPE_CHECKING, Any, Callable

from currents.chat.exceptions import ChatError, InvalidParentError, NotFoundError
from currents.chat.models import (
    DEFAULT_THREAD_TITLE,
    ChatThread,
    Draft,
    Message,
    Role,
    ToolCall,
    coerce_tool_calls,
    utc_now,
)
from currents.chat.registry import ThreadRegistry
from currents.sync.operations import OperationType

if TYPE_CHECKING:
    from currents.sync.executor import SyncExecutor

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1

# Fields a message patch may touch; tree shape is never patched
PATCHABLE_FIELDS = frozenset({"role", "content", "thinking", "tool_calls"})

MessagePatch = dict[str, Any]
PatchSource = MessagePatch | Callable[[Message], MessagePatch]


class ConversationTree:
    """In-memory forest of messages per thread with branch navigation."""

    def __init__(
        self,
        sync: "SyncExecutor | None" = None,
        registry: ThreadRegistry | None = None,
    ):
        self.registry = registry or ThreadRegistry(sync)
        self.messages: dict[str, Message] = {}

    @property
    def threads(self) -> dict[str, ChatThread]:
        return self.registry.threads

    @property
    def drafts(self) -> dict[str, Draft]:
        return self.registry.drafts

    def _emit(self, op_type: OperationType, payload: dict[str, Any]) -> None:
        self.registry.emit(op_type, payload)

    # ------------------------------------------------------------------
    # Threads and drafts
    # ------------------------------------------------------------------

    def create_thread(self, title: str = DEFAULT_THREAD_TITLE) -> str:
        """Allocate a new, empty thread and return its id."""
        return self.registry.create_thread(title).id

    def get_thread(self, thread_id: str) -> ChatThread | None:
        return self.registry.get_thread(thread_id)

    def update_thread_title(self, thread_id: str, title: str) -> None:
        self.registry.set_title(thread_id, title)

    def get_draft(self, thread_id: str) -> str:
        return self.registry.get_draft(thread_id)

    def update_draft(self, thread_id: str, value: str) -> None:
        self.registry.set_draft(thread_id, value)

    def clear_draft(self, thread_id: str) -> None:
        self.registry.clear_draft(thread_id)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def add_message(
        self,
        thread_id: str,
        parent_id: str | None,
        role: Role | str,
        content: str,
        thinking: str | None = None,
        tool_calls: list[ToolCall | dict[str, Any]] | None = None,
        message_id: str | None = None,
    ) -> Message:
        """Append a message under ``parent_id`` (or as a new root).

        The new message becomes the selected branch at its insertion point and
        the thread's leaf.

        Args:
            thread_id: Thread receiving the message
            parent_id: Parent message id, or None for a root message
            role: system, user, assistant or tool
            content: Message text
            thinking: Optional reasoning text
            tool_calls: Optional tool invocations
            message_id: Explicit id for idempotent replays. If a message with
                this id already exists it is returned unchanged.

        Raises:
            NotFoundError: If the thread does not exist
            InvalidParentError: If parent_id is not a message of this thread
        """
        thread = self.registry.require_thread(thread_id)

        if message_id is not None and message_id in self.messages:
            existing = self.messages[message_id]
            if existing.thread_id != thread_id or existing.parent_id != parent_id:
                raise ChatError(
                    f"Message {message_id} already exists at a different position"
                )
            logger.debug(f"Replay of existing message {message_id} ignored")
            return existing

        parent = None
        if parent_id is not None:
            parent = self.messages.get(parent_id)
            if parent is None or parent.thread_id != thread_id:
                raise InvalidParentError(
                    f"Parent {parent_id} does not exist in thread {thread_id}"
                )

        message = Message(
            id=message_id or str(uuid.uuid4()),
            thread_id=thread_id,
            parent_id=parent_id,
            role=role,
            content=content,
            thinking=thinking,
            tool_calls=coerce_tool_calls(tool_calls),
        )
        self.messages[message.id] = message

        if parent is not None:
            parent.children.append(message.id)
        else:
            thread.root_children.append(message.id)

        self._select_path_to(thread, message)
        thread.leaf_message_id = message.id

        self._emit(OperationType.UPSERT_MESSAGE, message.to_row())
        self.registry.publish_thread(thread)
        return message

    def update_message(self, message_id: str, updates: PatchSource) -> Message:
        """Shallow-merge a patch into a stored message.

        Args:
            message_id: Message to update
            updates: A partial dict, or a function of the current message
                returning one

        Raises:
            NotFoundError: If the message does not exist
            ValueError: If the patch touches tree structure or unknown fields
        """
        message = self.messages.get(message_id)
        if message is None:
            raise NotFoundError(f"Message not found: {message_id}")

        patch = updates(message) if callable(updates) else updates
        if not patch:
            return message

        invalid = set(patch) - PATCHABLE_FIELDS
        if invalid:
            raise ValueError(f"Cannot patch message fields: {', '.join(sorted(invalid))}")

        # Coerce every field before touching the message so a bad patch changes nothing
        coerced = dict(patch)
        if "tool_calls" in coerced:
            coerced["tool_calls"] = coerce_tool_calls(coerced["tool_calls"])
        if "role" in coerced:
            coerced["role"] = Role(coerced["role"])

        for key, value in coerced.items():
            setattr(message, key, value)
        message.updated_at = utc_now()

        row = message.to_row()
        fields = {key: row[key] for key in patch}
        fields["updated_at"] = row["updated_at"]
        self._emit(OperationType.UPDATE_MESSAGE, {"id": message_id, "fields": fields})
        return message

    def delete_message(self, message_id: str) -> list[str]:
        """Remove a message together with its whole subtree.

        Cursors that pointed at a removed message fall back to the newest
        remaining sibling, and the leaf is re-derived.

        Returns:
            Removed message ids, the requested message first

        Raises:
            NotFoundError: If the message does not exist
        """
        message = self.messages.get(message_id)
        if message is None:
            raise NotFoundError(f"Message not found: {message_id}")
        thread = self.registry.require_thread(message.thread_id)

        removed: list[str] = []
        stack = [message_id]
        while stack:
            current = stack.pop()
            removed.append(current)
            stack.extend(self.messages[current].children)

        if message.parent_id is not None:
            parent = self.messages[message.parent_id]
            parent.children.remove(message_id)
            if thread.selected_child_by_message_id.get(parent.id) == message_id:
                if parent.children:
                    thread.selected_child_by_message_id[parent.id] = parent.children[-1]
                else:
                    del thread.selected_child_by_message_id[parent.id]
        else:
            thread.root_children.remove(message_id)
            if thread.selected_root_child == message_id:
                thread.selected_root_child = (
                    thread.root_children[-1] if thread.root_children else None
                )

        for mid in removed:
            del self.messages[mid]
            thread.selected_child_by_message_id.pop(mid, None)

        thread.leaf_message_id = self._derive_leaf(thread)

        # Descendants go first so no remote row is left pointing at a deleted parent
        for mid in reversed(removed):
            self._emit(OperationType.DELETE_MESSAGE, {"id": mid})
        self.registry.publish_thread(thread)

        logger.debug(f"Deleted {len(removed)} messages from thread {thread.id}")
        return removed

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def select_branch(
        self, thread_id: str | None, parent_id: str | None, child_id: str
    ) -> None:
        """Point the branch cursor at ``child_id`` and re-derive the leaf.

        With ``parent_id`` None this selects among the thread's root messages.
        Does nothing if ``child_id`` is not a child of ``parent_id``.

        Raises:
            NotFoundError: If the thread does not exist
        """
        if thread_id is None:
            return
        thread = self.registry.require_thread(thread_id)
        before = (
            thread.selected_root_child,
            dict(thread.selected_child_by_message_id),
            thread.leaf_message_id,
        )

        if parent_id is None:
            if child_id not in thread.root_children:
                logger.debug(f"{child_id} is not a root of thread {thread_id}")
                return
            thread.selected_root_child = child_id
        else:
            parent = self.messages.get(parent_id)
            if (
                parent is None
                or parent.thread_id != thread_id
                or child_id not in parent.children
            ):
                logger.debug(f"{child_id} is not a child of {parent_id}")
                return
            thread.selected_child_by_message_id[parent_id] = child_id

        thread.leaf_message_id = self._derive_leaf(thread)

        after = (
            thread.selected_root_child,
            thread.selected_child_by_message_id,
            thread.leaf_message_id,
        )
        if after != before:
            self.registry.publish_thread(thread)

    def get_message_chain(self, leaf_id: str | None) -> list[Message]:
        """Messages from the root down to ``leaf_id`` inclusive.

        Follows ``parent_id`` ancestry, independent of branch selection.
        """
        chain: list[Message] = []
        current = self.messages.get(leaf_id) if leaf_id is not None else None
        while current is not None:
            chain.append(current)
            current = (
                self.messages.get(current.parent_id)
                if current.parent_id is not None
                else None
            )
        chain.reverse()
        return chain

    def get_active_chain(self, thread_id: str) -> list[Message]:
        """The selected path of a thread, root to leaf."""
        thread = self.registry.require_thread(thread_id)
        return self.get_message_chain(thread.leaf_message_id)

    def _select_path_to(self, thread: ChatThread, message: Message) -> None:
        current = message
        while current.parent_id is not None:
            thread.selected_child_by_message_id[current.parent_id] = current.id
            current = self.messages[current.parent_id]
        thread.selected_root_child = current.id

    def _derive_leaf(self, thread: ChatThread) -> str | None:
        current = thread.selected_root_child
        if current is None or current not in self.messages:
            return None

        while True:
            selected = thread.selected_child_by_message_id.get(current)
            if selected is None or selected not in self.messages[current].children:
                return current
            current = selected

    # ------------------------------------------------------------------
    # Snapshots and hydration
    # ------------------------------------------------------------------

    def snapshot(self) -> dict[str, Any]:
        """Serializable copy of all threads, messages and drafts."""
        return {
            "version": SNAPSHOT_VERSION,
            "threads": [t.to_row() for t in self.threads.values()],
            "messages": [m.to_row() for m in self.messages.values()],
            "drafts": [d.to_row() for d in self.drafts.values()],
        }

    @classmethod
    def from_snapshot(
        cls, data: dict[str, Any], sync: "SyncExecutor | None" = None
    ) -> "ConversationTree":
        tree = cls(sync=sync)
        tree.load(
            data.get("threads", []),
            data.get("messages", []),
            data.get("drafts", []),
            order_by_time=False,
        )
        return tree

    def load(
        self,
        thread_rows: list[dict[str, Any]],
        message_rows: list[dict[str, Any]],
        draft_rows: list[dict[str, Any]],
        order_by_time: bool = True,
    ) -> None:
        """Replace local state with the given rows without emitting writes.

        Children lists are rebuilt from ``parent_id``. Messages whose ancestry
        is incomplete are dropped, and branch selections pointing at missing
        messages are discarded.

        Args:
            thread_rows: ``chat_threads`` rows
            message_rows: ``chat_messages`` rows
            draft_rows: ``chat_drafts`` rows
            order_by_time: Order siblings by created_at. When False, row order
                is taken as creation order.
        """
        threads = {row["id"]: ChatThread.from_row(row) for row in thread_rows}
        candidates = [Message.from_row(row) for row in message_rows]
        if order_by_time:
            candidates.sort(key=lambda m: m.created_at)

        by_id = {m.id: m for m in candidates if m.thread_id in threads}
        valid: dict[str, bool] = {}

        def attached(mid: str) -> bool:
            path = []
            current = mid
            while current not in valid:
                if current in path:
                    ok = False
                    break
                path.append(current)
                msg = by_id.get(current)
                if msg is None:
                    ok = False
                    break
                if msg.parent_id is None:
                    ok = True
                    break
                parent = by_id.get(msg.parent_id)
                if parent is None or parent.thread_id != msg.thread_id:
                    ok = False
                    break
                current = msg.parent_id
            else:
                ok = valid[current]
            for p in path:
                valid[p] = ok
            return valid[mid]

        self.messages = {}
        for message in candidates:
            if message.id in by_id and attached(message.id):
                self.messages[message.id] = message
            else:
                logger.warning(f"Dropping detached message {message.id}")

        roots_by_thread: dict[str, list[str]] = {tid: [] for tid in threads}
        for message in self.messages.values():
            if message.parent_id is None:
                roots_by_thread[message.thread_id].append(message.id)
            else:
                self.messages[message.parent_id].children.append(message.id)

        for thread in threads.values():
            roots = roots_by_thread[thread.id]
            ordered = [mid for mid in thread.root_children if mid in roots]
            ordered += [mid for mid in roots if mid not in ordered]
            thread.root_children = ordered

            if thread.selected_root_child not in ordered:
                thread.selected_root_child = ordered[-1] if ordered else None
            thread.selected_child_by_message_id = {
                parent: child
                for parent, child in thread.selected_child_by_message_id.items()
                if parent in self.messages
                and child in self.messages[parent].children
            }
            thread.leaf_message_id = self._derive_leaf(thread)

        self.registry.threads = threads
        self.registry.drafts = {
            row["thread_id"]: Draft.from_row(row)
            for row in draft_rows
            if row.get("thread_id") in threads
        }
        logger.debug(
            f"Loaded {len(threads)} threads and {len(self.messages)} messages"
        )

"""Chat data model: messages, threads, drafts.

Each type converts to and from the row shape stored remotely
(``chat_messages``, ``chat_threads``, ``chat_drafts``). Thread branch state
travels in the thread row's ``metadata`` column.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

DEFAULT_THREAD_TITLE = "New Chat"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_time(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if value:
        return datetime.fromisoformat(value)
    return utc_now()


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ToolCallStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class ToolCall:
    """One tool invocation attached to an assistant message."""

    id: str
    name: str
    arguments: str = ""
    status: ToolCallStatus = ToolCallStatus.PENDING
    response: str | None = None
    error: str | None = None

    def __post_init__(self):
        self.status = ToolCallStatus(self.status)

    def to_dict(self) -> dict[str, Any]:
        data = {
            "id": self.id,
            "name": self.name,
            "arguments": self.arguments,
            "status": self.status.value,
        }
        if self.response is not None:
            data["response"] = self.response
        if self.error is not None:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ToolCall":
        return cls(
            id=data["id"],
            name=data["name"],
            arguments=data.get("arguments", ""),
            status=data.get("status", ToolCallStatus.PENDING),
            response=data.get("response"),
            error=data.get("error"),
        )


def coerce_tool_calls(value: Any) -> list[ToolCall] | None:
    """Accept ToolCall objects or their dict form.

    Raises:
        ValueError: If an entry is not a valid tool call
    """
    if value is None:
        return None
    try:
        return [
            tc if isinstance(tc, ToolCall) else ToolCall.from_dict(tc) for tc in value
        ]
    except (KeyError, TypeError, AttributeError) as e:
        raise ValueError(f"Invalid tool call: {e!r}") from e


@dataclass
class Message:
    id: str
    thread_id: str
    parent_id: str | None
    role: Role
    content: str
    thinking: str | None = None
    tool_calls: list[ToolCall] | None = None
    children: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        self.role = Role(self.role)

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "thread_id": self.thread_id,
            "parent_id": self.parent_id,
            "role": self.role.value,
            "content": self.content,
            "thinking": self.thinking,
            "tool_calls": (
                [tc.to_dict() for tc in self.tool_calls]
                if self.tool_calls is not None
                else None
            ),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Message":
        return cls(
            id=row["id"],
            thread_id=row["thread_id"],
            parent_id=row.get("parent_id"),
            role=row["role"],
            content=row.get("content", ""),
            thinking=row.get("thinking"),
            tool_calls=coerce_tool_calls(row.get("tool_calls")),
            created_at=_parse_time(row.get("created_at")),
            updated_at=_parse_time(row.get("updated_at")),
        )


@dataclass
class ChatThread:
    id: str
    title: str = DEFAULT_THREAD_TITLE
    leaf_message_id: str | None = None
    root_children: list[str] = field(default_factory=list)
    selected_root_child: str | None = None
    selected_child_by_message_id: dict[str, str] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def branch_metadata(self) -> dict[str, Any]:
        return {
            "leaf_message_id": self.leaf_message_id,
            "root_children": list(self.root_children),
            "selected_root_child": self.selected_root_child,
            "selected_child_by_message_id": dict(self.selected_child_by_message_id),
        }

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "metadata": self.branch_metadata(),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ChatThread":
        metadata = row.get("metadata") or {}
        return cls(
            id=row["id"],
            title=row.get("title") or DEFAULT_THREAD_TITLE,
            leaf_message_id=metadata.get("leaf_message_id"),
            root_children=list(metadata.get("root_children", [])),
            selected_root_child=metadata.get("selected_root_child"),
            selected_child_by_message_id=dict(
                metadata.get("selected_child_by_message_id", {})
            ),
            created_at=_parse_time(row.get("created_at")),
            updated_at=_parse_time(row.get("updated_at")),
        )


@dataclass
class Draft:
    """Unsent composer text for one thread."""

    thread_id: str
    text: str
    updated_at: datetime = field(default_factory=utc_now)

    def to_row(self) -> dict[str, Any]:
        return {
            "thread_id": self.thread_id,
            "draft_text": self.text,
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Draft":
        return cls(
            thread_id=row["thread_id"],
            text=row.get("draft_text", ""),
            updated_at=_parse_time(row.get("updated_at")),
        )

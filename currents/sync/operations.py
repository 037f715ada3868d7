"""Pending write operations destined for the remote store."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class OperationType(str, Enum):
    """Operation variants; values are the persisted wire names."""

    UPSERT_THREAD = "chat.upsert_thread"
    UPSERT_MESSAGE = "chat.upsert_message"
    UPDATE_MESSAGE = "chat.update_message"
    DELETE_MESSAGE = "chat.delete_message"
    UPSERT_DRAFT = "chat.upsert_draft"
    DELETE_DRAFT = "chat.delete_draft"
    UPSERT_BORDER = "layout.upsert_border"


# Remote collection each operation type targets
OPERATION_COLLECTIONS: dict[OperationType, str] = {
    OperationType.UPSERT_THREAD: "chat_threads",
    OperationType.UPSERT_MESSAGE: "chat_messages",
    OperationType.UPDATE_MESSAGE: "chat_messages",
    OperationType.DELETE_MESSAGE: "chat_messages",
    OperationType.UPSERT_DRAFT: "chat_drafts",
    OperationType.DELETE_DRAFT: "chat_drafts",
    OperationType.UPSERT_BORDER: "layout_borders",
}

# Payload keys every variant must carry
REQUIRED_PAYLOAD_KEYS: dict[OperationType, tuple[str, ...]] = {
    OperationType.UPSERT_THREAD: ("id", "title"),
    OperationType.UPSERT_MESSAGE: ("id", "thread_id", "role", "content"),
    OperationType.UPDATE_MESSAGE: ("id", "fields"),
    OperationType.DELETE_MESSAGE: ("id",),
    OperationType.UPSERT_DRAFT: ("thread_id", "draft_text"),
    OperationType.DELETE_DRAFT: ("thread_id",),
    OperationType.UPSERT_BORDER: ("border_id", "axis", "position"),
}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class PendingOperation:
    """A queued remote write.

    ``id`` only identifies the entry in the log; the remote row is addressed
    by the primary key inside ``payload``.
    """

    type: OperationType
    payload: dict[str, Any]
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    attempts: int = 0

    def __post_init__(self):
        self.type = OperationType(self.type)
        missing = [k for k in REQUIRED_PAYLOAD_KEYS[self.type] if k not in self.payload]
        if missing:
            raise ValueError(
                f"{self.type.value} payload is missing {', '.join(missing)}"
            )

    @property
    def collection(self) -> str:
        return OPERATION_COLLECTIONS[self.type]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "payload": self.payload,
            "attempts": self.attempts,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PendingOperation":
        return cls(
            id=data["id"],
            type=OperationType(data["type"]),
            payload=data["payload"],
            attempts=data.get("attempts", 0),
        )

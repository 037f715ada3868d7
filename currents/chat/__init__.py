"""Branching chat threads.

- ConversationTree: message forest with branch navigation
- ThreadRegistry: thread metadata and drafts
- Message, ChatThread, Draft, ToolCall: data model
"""

from currents.chat.exceptions import ChatError, InvalidParentError, NotFoundError
from currents.chat.models import (
    ChatThread,
    Draft,
    Message,
    Role,
    ToolCall,
    ToolCallStatus,
)
from currents.chat.registry import ThreadRegistry
from currents.chat.tree import ConversationTree

__all__ = [
    "ConversationTree",
    "ThreadRegistry",
    "ChatThread",
    "Draft",
    "Message",
    "Role",
    "ToolCall",
    "ToolCallStatus",
    "ChatError",
    "InvalidParentError",
    "NotFoundError",
]

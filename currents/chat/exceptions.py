"""
Exceptions for conversation tree operations.

These signal programming errors (bad ids passed by the caller). They are raised
synchronously and the failed mutation is never enqueued for sync.
"""


class ChatError(Exception):
    """Base exception for conversation tree operations."""


class InvalidParentError(ChatError):
    """Raised when a message's parent does not exist in the target thread."""


class NotFoundError(ChatError):
    """Raised when a thread or message id is unknown."""

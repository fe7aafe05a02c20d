"""Chat History Management

Persistence and live synchronization of chat sessions and their messages.
"""

from .exceptions import (
    ChatHistoryError,
    MalformedDocumentError,
    MessageAppendError,
    SessionMetadataUpdateError,
    SessionWriteError,
)
from .models import (
    ChatMessage,
    ChatSession,
    MessageRole,
    MessageStatus,
    TITLE_MAX_LENGTH,
    make_title,
)
from .repository import MessageRepository, SessionRepository

__all__ = [
    "ChatHistoryError",
    "ChatMessage",
    "ChatSession",
    "MalformedDocumentError",
    "MessageAppendError",
    "MessageRepository",
    "MessageRole",
    "MessageStatus",
    "SessionMetadataUpdateError",
    "SessionRepository",
    "SessionWriteError",
    "TITLE_MAX_LENGTH",
    "make_title",
]

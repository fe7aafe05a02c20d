"""Chat History Models

Domain objects for chat sessions and messages as seen by the view layer.

Related Classes: SessionRepository, MessageRepository (repository.py)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, Optional

TITLE_MAX_LENGTH = 30
PREVIEW_MAX_LENGTH = 40
ELLIPSIS = "…"
DEFAULT_TITLE = "New Chat"


class MessageRole(str, Enum):
    """Who authored a message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class MessageStatus(str, Enum):
    """Client-observed message state: pending-local -> confirmed only."""

    PENDING_LOCAL = "pending-local"
    CONFIRMED = "confirmed"


def truncate(text: str, max_length: int) -> str:
    """Cut ``text`` to ``max_length`` characters, marking the cut with an ellipsis."""
    if len(text) <= max_length:
        return text
    return text[:max_length] + ELLIPSIS


def make_title(content: str, max_length: int = TITLE_MAX_LENGTH) -> str:
    """Session title derived from the first user message, kept verbatim up to ``max_length``."""
    return truncate(content, max_length)


@dataclass(slots=True)
class ChatSession:
    """One conversation thread owned by a single user.

    Sessions list newest first by ``updated_at``; ``updated_at`` never
    precedes ``created_at``.
    """

    id: str
    user_id: str
    title: str  # empty until the first user message
    last_message_text: str
    created_at: datetime
    updated_at: datetime

    @property
    def display_title(self) -> str:
        return self.title or DEFAULT_TITLE

    def preview(self, max_length: int = PREVIEW_MAX_LENGTH) -> str:
        """Short form of the last message for session lists."""
        return truncate(self.last_message_text, max_length)


@dataclass(slots=True)
class ChatMessage:
    """One turn in a session.

    Confirmed messages carry the store-assigned id. Pending messages carry a
    temporary ``local-...`` id and, once the write is acknowledged,
    ``confirmed_id``.
    """

    id: str
    role: MessageRole
    content: str
    created_at: Optional[datetime] = None
    status: MessageStatus = MessageStatus.CONFIRMED
    confirmed_id: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.status is MessageStatus.PENDING_LOCAL

    def to_history_entry(self) -> Dict[str, str]:
        """``{"role": ..., "content": ...}`` form used by LLM clients."""
        return {"role": self.role.value, "content": self.content}

"""Optimistic message list.

Locally typed messages are shown before the store confirms them. Every
subscription snapshot replaces the displayed list wholesale; pending entries
are laid on top until a snapshot carries their confirmed store id.
"""

from __future__ import annotations

import itertools
import logging
import time
from dataclasses import replace
from typing import List, Optional, Sequence

from src.chat_history import ChatMessage, MessageRole, MessageStatus

logger = logging.getLogger(__name__)

_sequence = itertools.count()


def temporary_id(role: MessageRole) -> str:
    return f"local-{role.value}-{time.time_ns()}-{next(_sequence)}"


class OptimisticMessageList:
    """Displayed messages for one session: authoritative snapshot + pending overlay."""

    def __init__(self):
        self._confirmed: List[ChatMessage] = []
        self._pending: List[ChatMessage] = []
        self._displayed: List[ChatMessage] = []

    @property
    def displayed(self) -> List[ChatMessage]:
        return list(self._displayed)

    @property
    def pending(self) -> List[ChatMessage]:
        return list(self._pending)

    def add_pending(self, role: MessageRole, content: str) -> ChatMessage:
        """Show a message immediately, before it is persisted."""
        message = ChatMessage(
            id=temporary_id(role),
            role=role,
            content=content,
            status=MessageStatus.PENDING_LOCAL,
        )
        self._pending.append(message)
        self._rebuild()
        return message

    def confirm(self, temp_id: str, message_id: str, content: Optional[str] = None) -> None:
        """Record the store id of a pending message once its write is acknowledged.

        ``content`` replaces a placeholder's text with what was actually stored.
        """
        for index, message in enumerate(self._pending):
            if message.id == temp_id:
                self._pending[index] = replace(
                    message,
                    confirmed_id=message_id,
                    content=message.content if content is None else content,
                )
                break
        else:
            logger.debug("No pending message %s to confirm", temp_id)
            return
        self._rebuild()

    def discard(self, temp_id: str) -> None:
        self._pending = [m for m in self._pending if m.id != temp_id]
        self._rebuild()

    def apply_snapshot(self, messages: Sequence[ChatMessage]) -> None:
        """Replace the authoritative list with a subscription snapshot."""
        self._confirmed = list(messages)
        self._rebuild()

    def clear(self) -> None:
        self._confirmed = []
        self._pending = []
        self._displayed = []

    def _rebuild(self) -> None:
        confirmed_ids = {message.id for message in self._confirmed}
        # A pending entry is superseded once its store id shows up in a snapshot.
        self._pending = [
            message for message in self._pending if message.confirmed_id not in confirmed_ids
        ]
        self._displayed = self._confirmed + self._pending

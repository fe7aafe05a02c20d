"""Chat view controller.

Drives one chat screen: the live session list, the selected session's
messages (optimistic, reconciled against the live subscription), and the
round trip to the AI responder. All actions run on the event loop; store
writes and responder calls are awaited, never blocking the loop.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from src.ai_responder import FALLBACK_MESSAGE, AIResponder, fetch_with_retries
from src.chat_history import (
    ChatHistoryError,
    ChatMessage,
    ChatSession,
    MessageRepository,
    MessageRole,
    SessionMetadataUpdateError,
    SessionRepository,
)
from src.document_store import DocumentStoreError, Subscription

from .reconciliation import OptimisticMessageList

logger = logging.getLogger(__name__)

ASSISTANT_PLACEHOLDER = "…"


class ChatViewController:
    """State and actions behind a chat screen for one signed-in user."""

    def __init__(
        self,
        user_id: str,
        sessions: SessionRepository,
        messages: MessageRepository,
        responder: AIResponder,
        ai_max_retries: int = 1,
        fallback_message: str = FALLBACK_MESSAGE,
        on_change: Optional[Callable[["ChatViewController"], None]] = None,
    ):
        self.user_id = user_id
        self._sessions_repo = sessions
        self._messages_repo = messages
        self._responder = responder
        self._ai_max_retries = max(0, ai_max_retries)
        self._fallback_message = fallback_message
        self._on_change = on_change

        self.sessions: List[ChatSession] = []
        self.active_session_id: Optional[str] = None
        self.error: Optional[str] = None
        self.is_sending = False

        self._list = OptimisticMessageList()
        self._sessions_sub: Optional[Subscription] = None
        self._messages_sub: Optional[Subscription] = None

    # ------------------------------------------------------------------ state

    @property
    def messages(self) -> List[ChatMessage]:
        return self._list.displayed

    @property
    def active_session(self) -> Optional[ChatSession]:
        return next((s for s in self.sessions if s.id == self.active_session_id), None)

    def _changed(self) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change(self)
        except Exception:
            logger.exception("on_change listener raised")

    def _set_error(self, message: Optional[str]) -> None:
        self.error = message
        self._changed()

    # ---------------------------------------------------------- subscriptions

    def start(self) -> None:
        """Subscribe to the user's session list."""
        if self._sessions_sub is not None and self._sessions_sub.active:
            return
        self._sessions_sub = self._sessions_repo.subscribe_to_sessions(
            self.user_id, self._on_sessions, self._on_sessions_error
        )

    def resubscribe(self) -> None:
        """Re-establish subscriptions that died on an error."""
        self.start()
        if self.active_session_id is not None and (
            self._messages_sub is None or not self._messages_sub.active
        ):
            self._subscribe_messages(self.active_session_id)

    def close(self) -> None:
        """Tear down every subscription. Idempotent."""
        if self._sessions_sub is not None:
            self._sessions_sub.unsubscribe()
            self._sessions_sub = None
        self._drop_message_subscription()

    def _on_sessions(self, sessions: List[ChatSession]) -> None:
        self.sessions = sessions
        self._changed()

    def _on_sessions_error(self, error: BaseException) -> None:
        logger.error("Session list subscription failed: %s", error)
        self._set_error("Failed to load chat history.")

    def _subscribe_messages(self, session_id: str) -> None:
        self._drop_message_subscription()

        def on_update(messages: List[ChatMessage]) -> None:
            # Late deliveries for a session we already left are ignored.
            if session_id != self.active_session_id:
                return
            self._list.apply_snapshot(messages)
            self._changed()

        def on_error(error: BaseException) -> None:
            logger.error("Message subscription for %s failed: %s", session_id, error)
            if session_id == self.active_session_id:
                self._set_error("Failed to load chat messages.")

        self._messages_sub = self._messages_repo.subscribe_to_messages(
            self.user_id, session_id, on_update, on_error
        )

    def _drop_message_subscription(self) -> None:
        if self._messages_sub is not None:
            self._messages_sub.unsubscribe()
            self._messages_sub = None

    # ---------------------------------------------------------------- actions

    def switch_session(self, session_id: Optional[str]) -> None:
        """Show another session; exactly one message subscription stays active."""
        if session_id == self.active_session_id and (
            session_id is None or (self._messages_sub is not None and self._messages_sub.active)
        ):
            return
        self.active_session_id = session_id
        self._list.clear()
        self.error = None
        if session_id is None:
            self._drop_message_subscription()
        else:
            self._subscribe_messages(session_id)
        self._changed()

    async def new_chat(self) -> Optional[str]:
        """Create an empty session and switch to it."""
        try:
            session_id = await self._sessions_repo.create_session(self.user_id)
        except ChatHistoryError as exc:
            logger.error("Failed to start a new chat: %s", exc)
            self._set_error("Could not start a new chat. Please try again.")
            return None
        self.switch_session(session_id)
        return session_id

    async def delete_chat(self, session_id: str) -> bool:
        try:
            await self._sessions_repo.delete_session(self.user_id, session_id)
        except ChatHistoryError as exc:
            logger.error("Failed to delete chat %s: %s", session_id, exc)
            self._set_error("Could not delete the chat. Please try again.")
            return False
        if session_id == self.active_session_id:
            self.switch_session(None)
        return True

    async def submit_message(self, text: str) -> bool:
        """Send a user message and fetch the assistant reply.

        Returns:
            True when both turns were persisted (the reply may be the fallback)
        """
        text = text.strip()
        if not text or self.is_sending:
            return False
        self.is_sending = True
        self.error = None
        try:
            if self.active_session_id is None:
                if await self.new_chat() is None:
                    return False
            session_id = self.active_session_id
            history = [m.to_history_entry() for m in self._list.displayed if not m.is_pending]

            if not await self._persist(session_id, MessageRole.USER, text):
                return False

            placeholder = self._list.add_pending(MessageRole.ASSISTANT, ASSISTANT_PLACEHOLDER)
            self._changed()
            reply = await self._fetch_reply(session_id, text, history)
            return await self._persist(session_id, MessageRole.ASSISTANT, reply, pending=placeholder)
        finally:
            self.is_sending = False
            self._changed()

    async def _persist(
        self,
        session_id: str,
        role: MessageRole,
        content: str,
        pending: Optional[ChatMessage] = None,
    ) -> bool:
        if pending is None:
            pending = self._list.add_pending(role, content)
            self._changed()
        try:
            message_id = await self._messages_repo.append_message(
                self.user_id, session_id, role, content
            )
        except SessionMetadataUpdateError as exc:
            # The message itself is stored; only the session summary lags.
            logger.error("Session %s metadata is stale: %s", session_id, exc)
            message_id = exc.message_id
            await self._repair_metadata(session_id)
        except ChatHistoryError as exc:
            logger.error("Failed to save %s message in %s: %s", role.value, session_id, exc)
            self._set_error("Message could not be saved. Please try again.")
            return False
        if session_id == self.active_session_id:
            self._list.confirm(pending.id, message_id, content=content)
            self._changed()
        return True

    async def _repair_metadata(self, session_id: str) -> None:
        try:
            await self._messages_repo.repair_session_metadata(self.user_id, session_id)
        except (ChatHistoryError, DocumentStoreError) as exc:
            logger.error("Repair of session %s failed: %s", session_id, exc)
            self._set_error("Message saved, but the chat list could not be updated.")

    async def _fetch_reply(self, session_id: str, text: str, history) -> str:
        reply = await fetch_with_retries(
            self._responder, session_id, text, history, self._ai_max_retries
        )
        if reply is None:
            self._set_error("The assistant could not respond. Please try again.")
            return self._fallback_message
        return reply

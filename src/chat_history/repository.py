"""Chat History Repositories

Session and message persistence over the document store, plus live
subscriptions that deliver full ordered snapshots.

Layout:
    users/{userId}/chatHistory/{sessionId}                      session metadata
    users/{userId}/chatHistory/{sessionId}/messages/{messageId} messages

Related Classes: ChatSession, ChatMessage (models.py)
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Callable, List, Optional, Union

from src.document_store import (
    SERVER_TIMESTAMP,
    DocumentNotFoundError,
    DocumentStore,
    DocumentStoreError,
    SnapshotStream,
    Subscription,
    collection_path,
    document_path,
)

from .exceptions import (
    MalformedDocumentError,
    MessageAppendError,
    SessionMetadataUpdateError,
    SessionWriteError,
)
from .models import TITLE_MAX_LENGTH, ChatMessage, ChatSession, MessageRole, make_title
from .schemas import ROLE_ALIASES, parse_messages, parse_session, parse_sessions

logger = logging.getLogger(__name__)

SessionsCallback = Callable[[List[ChatSession]], None]
MessagesCallback = Callable[[List[ChatMessage]], None]
ErrorCallback = Callable[[BaseException], None]


def sessions_collection(user_id: str) -> str:
    return collection_path("users", user_id, "chatHistory")


def session_document(user_id: str, session_id: str) -> str:
    return document_path("users", user_id, "chatHistory", session_id)


def messages_collection(user_id: str, session_id: str) -> str:
    return collection_path("users", user_id, "chatHistory", session_id, "messages")


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


def coerce_role(role: Union[MessageRole, str]) -> MessageRole:
    """Accept enum members, their values, or the legacy ``ai`` alias."""
    if isinstance(role, MessageRole):
        return role
    return MessageRole(ROLE_ALIASES.get(role, role))


class SessionRepository:
    """Session metadata CRUD and live session lists."""

    def __init__(self, store: DocumentStore):
        self._store = store

    async def create_session(self, user_id: str, title: str = "") -> str:
        """Create an empty session and return its id once the write is acknowledged.

        Args:
            user_id: owning user
            title: initial title; normally empty until the first user message

        Returns:
            The new session id (uuid4)

        Raises:
            SessionWriteError: the store rejected the write
        """
        session_id = str(uuid.uuid4())
        data = {
            "userId": user_id,
            "title": title,
            "lastMessageText": "",
            "createdAt": SERVER_TIMESTAMP,
            "updatedAt": SERVER_TIMESTAMP,
        }
        try:
            await asyncio.to_thread(self._store.set, session_document(user_id, session_id), data)
        except DocumentStoreError as exc:
            logger.error("Failed to create session for %s: %s", user_id, exc)
            raise SessionWriteError(f"Failed to create session: {exc}") from exc
        logger.info("Created session %s for user %s", session_id, user_id)
        return session_id

    def subscribe_to_sessions(
        self,
        user_id: str,
        on_update: SessionsCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """Live session list, newest ``updated_at`` first.

        ``on_update`` receives the full list for the initial snapshot and after
        every change. After ``on_error`` fires the subscription is dead; call
        this again to resume.
        """
        return self._store.watch(
            sessions_collection(user_id),
            "updatedAt",
            lambda snapshots: on_update(parse_sessions(snapshots)),
            on_error,
            descending=True,
            loop=_running_loop(),
        )

    def stream_sessions(self, user_id: str) -> SnapshotStream[List[ChatSession]]:
        return SnapshotStream(
            lambda on_update, on_error: self.subscribe_to_sessions(user_id, on_update, on_error)
        )

    async def get_session(self, user_id: str, session_id: str) -> Optional[ChatSession]:
        snapshot = await asyncio.to_thread(self._store.get, session_document(user_id, session_id))
        return parse_session(snapshot) if snapshot else None

    async def list_sessions(self, user_id: str, limit: Optional[int] = 20) -> List[ChatSession]:
        """Sessions newest first; ``limit=None`` returns all of them."""
        snapshots = await asyncio.to_thread(
            self._store.query, sessions_collection(user_id), "updatedAt", True
        )
        sessions = parse_sessions(snapshots)
        return sessions if limit is None else sessions[:limit]

    async def search_sessions(self, user_id: str, query: str, limit: int = 20) -> List[ChatSession]:
        """Sessions whose title or last message contains ``query`` (case-insensitive)."""
        needle = query.lower()
        sessions = await self.list_sessions(user_id, limit=None)
        matches = [
            session
            for session in sessions
            if needle in session.title.lower() or needle in session.last_message_text.lower()
        ]
        return matches[:limit]

    async def delete_session(self, user_id: str, session_id: str) -> None:
        """Delete session metadata, then its messages on a best-effort basis.

        Raises:
            SessionWriteError: the session document could not be deleted
        """
        try:
            await asyncio.to_thread(self._store.delete, session_document(user_id, session_id))
        except DocumentStoreError as exc:
            logger.error("Failed to delete session %s: %s", session_id, exc)
            raise SessionWriteError(f"Failed to delete session: {exc}") from exc
        logger.info("Deleted session %s for user %s", session_id, user_id)
        await asyncio.to_thread(self._purge_messages, user_id, session_id)

    def _purge_messages(self, user_id: str, session_id: str) -> int:
        collection = messages_collection(user_id, session_id)
        try:
            snapshots = self._store.query(collection, "createdAt")
        except DocumentStoreError as exc:
            logger.warning("Could not list messages of deleted session %s: %s", session_id, exc)
            return 0
        removed = 0
        for snapshot in snapshots:
            try:
                self._store.delete(snapshot.path)
                removed += 1
            except DocumentStoreError as exc:
                logger.warning("Orphaned message %s left behind: %s", snapshot.path, exc)
        logger.debug("Removed %d/%d messages of session %s", removed, len(snapshots), session_id)
        return removed


class MessageRepository:
    """Ordered message sequences scoped to one session."""

    def __init__(self, store: DocumentStore, title_max_length: int = TITLE_MAX_LENGTH):
        self._store = store
        self._title_max_length = title_max_length

    async def append_message(
        self,
        user_id: str,
        session_id: str,
        role: Union[MessageRole, str],
        content: str,
    ) -> str:
        """Insert a message and refresh the parent session's metadata.

        These are two sequential writes. When the second one fails the message
        is durable but the session's title, last message text and updated
        timestamp are stale.

        Returns:
            The store-assigned message id

        Raises:
            ValueError: unknown role or blank content
            MessageAppendError: the message was not written
            SessionMetadataUpdateError: the message was written, the session was not updated
        """
        role = coerce_role(role)
        if not content or not content.strip():
            raise ValueError("Message content must not be blank")
        data = {"role": role.value, "content": content, "createdAt": SERVER_TIMESTAMP}
        try:
            snapshot = await asyncio.to_thread(
                self._store.add, messages_collection(user_id, session_id), data
            )
        except DocumentStoreError as exc:
            logger.error("Failed to append message to session %s: %s", session_id, exc)
            raise MessageAppendError(f"Failed to append message: {exc}") from exc

        try:
            await asyncio.to_thread(self._touch_session, user_id, session_id, role, content)
        except DocumentStoreError as exc:
            logger.error(
                "Message %s stored but metadata of session %s not updated: %s",
                snapshot.id,
                session_id,
                exc,
            )
            raise SessionMetadataUpdateError(
                f"Session metadata update failed: {exc}",
                session_id=session_id,
                message_id=snapshot.id,
            ) from exc
        return snapshot.id

    def _touch_session(
        self, user_id: str, session_id: str, role: MessageRole, content: str
    ) -> None:
        path = session_document(user_id, session_id)
        current = self._store.get(path)
        if current is None:
            raise DocumentNotFoundError(path)
        updates = {"lastMessageText": content, "updatedAt": SERVER_TIMESTAMP}
        if role is MessageRole.USER and not current.data.get("title"):
            updates["title"] = make_title(content, self._title_max_length)
        self._store.update(path, updates)

    def subscribe_to_messages(
        self,
        user_id: str,
        session_id: str,
        on_update: MessagesCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """Live message list, oldest ``created_at`` first."""
        return self._store.watch(
            messages_collection(user_id, session_id),
            "createdAt",
            lambda snapshots: on_update(parse_messages(snapshots)),
            on_error,
            loop=_running_loop(),
        )

    def stream_messages(self, user_id: str, session_id: str) -> SnapshotStream[List[ChatMessage]]:
        return SnapshotStream(
            lambda on_update, on_error: self.subscribe_to_messages(
                user_id, session_id, on_update, on_error
            )
        )

    async def list_messages(self, user_id: str, session_id: str) -> List[ChatMessage]:
        snapshots = await asyncio.to_thread(
            self._store.query, messages_collection(user_id, session_id), "createdAt"
        )
        return parse_messages(snapshots)

    async def repair_session_metadata(self, user_id: str, session_id: str) -> Optional[ChatSession]:
        """Recompute session metadata from the stored messages.

        Fixes the state left behind by ``SessionMetadataUpdateError``. The title
        is only filled in when it is still empty.

        Returns:
            The repaired session, or None if the session does not exist
        """
        return await asyncio.to_thread(self._repair, user_id, session_id)

    def _repair(self, user_id: str, session_id: str) -> Optional[ChatSession]:
        path = session_document(user_id, session_id)
        current = self._store.get(path)
        if current is None:
            return None
        messages = parse_messages(
            self._store.query(messages_collection(user_id, session_id), "createdAt")
        )
        if not messages:
            return parse_session(current)

        updates = {"lastMessageText": messages[-1].content, "updatedAt": SERVER_TIMESTAMP}
        if not current.data.get("title"):
            first_user = next((m for m in messages if m.role is MessageRole.USER), None)
            if first_user is not None:
                updates["title"] = make_title(first_user.content, self._title_max_length)
        repaired = self._store.update(path, updates)
        logger.info("Repaired metadata of session %s", session_id)
        try:
            return parse_session(repaired)
        except MalformedDocumentError:
            logger.warning("Session %s is still malformed after repair", session_id)
            raise

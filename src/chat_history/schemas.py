"""Stored document schemas.

Documents are flat camelCase records. They are validated here, at the
repository boundary, before becoming ``ChatSession``/``ChatMessage`` objects.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, List

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from src.document_store import DocumentSnapshot

from .exceptions import MalformedDocumentError
from .models import ChatMessage, ChatSession, MessageRole

logger = logging.getLogger(__name__)

# Older documents recorded the assistant as "ai".
ROLE_ALIASES = {"ai": MessageRole.ASSISTANT.value}


class SessionDocument(BaseModel):
    """``users/{userId}/chatHistory/{sessionId}``"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    user_id: str = Field(alias="userId", min_length=1)
    title: str
    last_message_text: str = Field(alias="lastMessageText")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    @model_validator(mode="after")
    def _check_timestamps(self) -> "SessionDocument":
        if self.updated_at < self.created_at:
            raise ValueError("updatedAt precedes createdAt")
        return self


class MessageDocument(BaseModel):
    """``users/{userId}/chatHistory/{sessionId}/messages/{messageId}``"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    role: MessageRole
    content: str
    created_at: datetime = Field(alias="createdAt")

    @field_validator("role", mode="before")
    @classmethod
    def _coerce_legacy_role(cls, value: Any) -> Any:
        if isinstance(value, str):
            return ROLE_ALIASES.get(value, value)
        return value


def parse_session(snapshot: DocumentSnapshot) -> ChatSession:
    """Validate one session document.

    Raises:
        MalformedDocumentError: the document does not match ``SessionDocument``
    """
    try:
        doc = SessionDocument.model_validate(snapshot.data)
    except ValidationError as exc:
        raise MalformedDocumentError(snapshot.path, str(exc)) from exc
    return ChatSession(
        id=snapshot.id,
        user_id=doc.user_id,
        title=doc.title,
        last_message_text=doc.last_message_text,
        created_at=doc.created_at,
        updated_at=doc.updated_at,
    )


def parse_message(snapshot: DocumentSnapshot) -> ChatMessage:
    try:
        doc = MessageDocument.model_validate(snapshot.data)
    except ValidationError as exc:
        raise MalformedDocumentError(snapshot.path, str(exc)) from exc
    return ChatMessage(
        id=snapshot.id,
        role=doc.role,
        content=doc.content,
        created_at=doc.created_at,
    )


def parse_sessions(snapshots: Iterable[DocumentSnapshot]) -> List[ChatSession]:
    """Parse a snapshot list, dropping (and logging) malformed documents."""
    sessions = []
    for snapshot in snapshots:
        try:
            sessions.append(parse_session(snapshot))
        except MalformedDocumentError as exc:
            logger.warning("Skipping session document: %s", exc)
    return sessions


def parse_messages(snapshots: Iterable[DocumentSnapshot]) -> List[ChatMessage]:
    messages = []
    for snapshot in snapshots:
        try:
            messages.append(parse_message(snapshot))
        except MalformedDocumentError as exc:
            logger.warning("Skipping message document: %s", exc)
    return messages

"""Dependency helpers shared across FastAPI routes."""

from __future__ import annotations

import json
from typing import AsyncIterator, Callable, List, Optional, TypeVar

from fastapi import HTTPException, Request

from src.chat_history import ChatMessage, ChatSession
from src.document_store import SnapshotStream
from src.reflection_chat import AppContext

from .schemas import ChatMessageResponse, ChatSessionDetail, ChatSessionSummary

T = TypeVar("T")


def get_context(request: Request) -> AppContext:
    """The AppContext created once in ``create_app``."""
    return request.app.state.context


def require_user(user_id: Optional[str]) -> str:
    """Identity is established upstream; the user id arrives as a header."""
    if not user_id or not user_id.strip():
        raise HTTPException(status_code=400, detail="X-User-Id header is required")
    if "/" in user_id:
        raise HTTPException(status_code=400, detail="Invalid user id")
    return user_id.strip()


def serialize_chat_session_summary(session: ChatSession) -> ChatSessionSummary:
    """Convert ChatSession dataclass to summary model."""
    return ChatSessionSummary(
        session_id=session.id,
        title=session.display_title,
        last_message_text=session.last_message_text,
        created_at=session.created_at,
        updated_at=session.updated_at,
    )


def serialize_chat_message(message: ChatMessage) -> ChatMessageResponse:
    return ChatMessageResponse(
        id=message.id,
        role=message.role,
        content=message.content,
        created_at=message.created_at,
    )


def serialize_chat_session_detail(
    session: ChatSession, messages: List[ChatMessage]
) -> ChatSessionDetail:
    """Convert ChatSession dataclass plus its messages to detail model."""
    summary = serialize_chat_session_summary(session)
    return ChatSessionDetail(
        **summary.model_dump(),
        messages=[serialize_chat_message(message) for message in messages],
    )


async def snapshot_events(
    stream: SnapshotStream[List[T]], serialize: Callable[[T], object]
) -> AsyncIterator[str]:
    """Server-sent events: one ``data:`` frame holding the full snapshot per change."""
    try:
        yield "retry: 3000\n\n"
        async for snapshot in stream:
            payload = [serialize(item).model_dump(mode="json") for item in snapshot]
            yield f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"
    except Exception as exc:
        yield f"event: error\ndata: {json.dumps({'detail': str(exc)})}\n\n"
    finally:
        stream.close()

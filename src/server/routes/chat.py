"""Chat-related API routes."""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import StreamingResponse

from src.ai_responder import fetch_with_retries
from src.chat_history import (
    ChatHistoryError,
    MessageRole,
    SessionMetadataUpdateError,
)
from src.document_store import DocumentStoreError
from src.reflection_chat import AppContext

from ..dependencies import (
    get_context,
    require_user,
    serialize_chat_message,
    serialize_chat_session_detail,
    serialize_chat_session_summary,
    snapshot_events,
)
from ..schemas import (
    ChatMessageResponse,
    ChatRequest,
    ChatSessionCreateRequest,
    ChatSessionDetail,
    ChatSessionSummary,
    ChatTurnResponse,
    DeleteResponse,
    HealthResponse,
)

logger = logging.getLogger(__name__)

PERSISTENCE_ERRORS = (ChatHistoryError, DocumentStoreError)

SSE_HEADERS = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}


async def _require_session(context: AppContext, user_id: str, session_id: str):
    session = await context.sessions.get_session(user_id, session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


async def _append(
    context: AppContext, user_id: str, session_id: str, role: MessageRole, content: str
):
    """Append a message; returns ``(message_id, metadata_stale)``."""
    try:
        return await context.messages.append_message(user_id, session_id, role, content), False
    except SessionMetadataUpdateError as exc:
        logger.error("Session %s metadata is stale after message %s", session_id, exc.message_id)
        return exc.message_id, True


async def run_chat_turn(
    context: AppContext, user_id: str, session_id: str, text: str
) -> ChatTurnResponse:
    """Store the user message, ask the responder, store the reply (or the fallback)."""
    history = [
        message.to_history_entry()
        for message in await context.messages.list_messages(user_id, session_id)
    ]
    user_message_id, stale = await _append(context, user_id, session_id, MessageRole.USER, text)

    reply = await fetch_with_retries(
        context.responder, session_id, text, history, context.config.ai.max_retries
    )
    fallback = reply is None
    if fallback:
        logger.warning("Responder failed for session %s; storing the fallback reply", session_id)
        reply = context.config.chat.fallback_message

    assistant_message_id, reply_stale = await _append(
        context, user_id, session_id, MessageRole.ASSISTANT, reply
    )
    return ChatTurnResponse(
        user_message_id=user_message_id,
        assistant_message_id=assistant_message_id,
        reply=reply,
        fallback=fallback,
        metadata_stale=stale or reply_stale,
    )


def register_chat_routes(app: FastAPI) -> None:
    """Register chat/session endpoints on the provided app."""

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        """Simple health check endpoint."""
        return HealthResponse(status="ok")

    @app.get("/api/chat/sessions", response_model=List[ChatSessionSummary])
    async def list_chat_sessions(
        request: Request,
        limit: int = 20,
        query: Optional[str] = None,
        x_user_id: Optional[str] = Header(default=None),
    ) -> List[ChatSessionSummary]:
        """List chat sessions ordered by updated timestamp."""
        user_id = require_user(x_user_id)
        context = get_context(request)
        try:
            if query:
                sessions = await context.sessions.search_sessions(user_id, query, limit)
            else:
                sessions = await context.sessions.list_sessions(user_id, limit)
            return [serialize_chat_session_summary(session) for session in sessions]
        except PERSISTENCE_ERRORS as exc:
            logger.exception("Failed to list chat sessions: %s", exc)
            raise HTTPException(status_code=500, detail="Failed to list chat sessions") from exc

    @app.post("/api/chat/sessions", response_model=ChatSessionSummary)
    async def create_chat_session(
        request: Request,
        body: Optional[ChatSessionCreateRequest] = None,
        x_user_id: Optional[str] = Header(default=None),
    ) -> ChatSessionSummary:
        """Start a new, empty chat session."""
        user_id = require_user(x_user_id)
        context = get_context(request)
        try:
            session_id = await context.sessions.create_session(
                user_id, body.title if body else ""
            )
            session = await _require_session(context, user_id, session_id)
            return serialize_chat_session_summary(session)
        except PERSISTENCE_ERRORS as exc:
            logger.exception("Failed to create chat session: %s", exc)
            raise HTTPException(status_code=500, detail="Failed to create session") from exc

    @app.get("/api/chat/sessions/stream")
    async def stream_chat_sessions(
        request: Request, x_user_id: Optional[str] = Header(default=None)
    ) -> StreamingResponse:
        """Push the full session list on every change (server-sent events)."""
        user_id = require_user(x_user_id)
        context = get_context(request)
        stream = context.sessions.stream_sessions(user_id)
        return StreamingResponse(
            snapshot_events(stream, serialize_chat_session_summary),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    @app.get("/api/chat/sessions/{session_id}", response_model=ChatSessionDetail)
    async def get_chat_session(
        session_id: str, request: Request, x_user_id: Optional[str] = Header(default=None)
    ) -> ChatSessionDetail:
        """Fetch a single chat session."""
        user_id = require_user(x_user_id)
        context = get_context(request)
        try:
            session = await _require_session(context, user_id, session_id)
            messages = await context.messages.list_messages(user_id, session_id)
            return serialize_chat_session_detail(session, messages)
        except HTTPException:
            raise
        except PERSISTENCE_ERRORS as exc:
            logger.exception("Failed to fetch chat session %s: %s", session_id, exc)
            raise HTTPException(status_code=500, detail="Failed to fetch chat session") from exc

    @app.delete("/api/chat/sessions/{session_id}", response_model=DeleteResponse)
    async def delete_chat_session(
        session_id: str, request: Request, x_user_id: Optional[str] = Header(default=None)
    ) -> DeleteResponse:
        """Delete a session; its messages are removed best-effort."""
        user_id = require_user(x_user_id)
        context = get_context(request)
        try:
            await _require_session(context, user_id, session_id)
            await context.sessions.delete_session(user_id, session_id)
            return DeleteResponse(deleted=True)
        except HTTPException:
            raise
        except PERSISTENCE_ERRORS as exc:
            logger.exception("Failed to delete chat session %s: %s", session_id, exc)
            raise HTTPException(status_code=500, detail="Failed to delete session") from exc

    @app.get(
        "/api/chat/sessions/{session_id}/messages",
        response_model=List[ChatMessageResponse],
    )
    async def list_chat_messages(
        session_id: str, request: Request, x_user_id: Optional[str] = Header(default=None)
    ) -> List[ChatMessageResponse]:
        """Messages of one session, oldest first."""
        user_id = require_user(x_user_id)
        context = get_context(request)
        try:
            await _require_session(context, user_id, session_id)
            messages = await context.messages.list_messages(user_id, session_id)
            return [serialize_chat_message(message) for message in messages]
        except HTTPException:
            raise
        except PERSISTENCE_ERRORS as exc:
            logger.exception("Failed to list messages of %s: %s", session_id, exc)
            raise HTTPException(status_code=500, detail="Failed to list messages") from exc

    @app.post("/api/chat/sessions/{session_id}/messages", response_model=ChatTurnResponse)
    async def post_chat_message(
        session_id: str,
        body: ChatRequest,
        request: Request,
        x_user_id: Optional[str] = Header(default=None),
    ) -> ChatTurnResponse:
        """Send a user message and store the assistant reply."""
        user_id = require_user(x_user_id)
        context = get_context(request)
        text = body.message.strip()
        if not text:
            raise HTTPException(status_code=400, detail="Message must not be blank")
        try:
            await _require_session(context, user_id, session_id)
            return await run_chat_turn(context, user_id, session_id, text)
        except HTTPException:
            raise
        except PERSISTENCE_ERRORS as exc:
            logger.exception("Chat request failed for %s: %s", session_id, exc)
            raise HTTPException(status_code=500, detail="Failed to save message") from exc

    @app.get("/api/chat/sessions/{session_id}/messages/stream")
    async def stream_chat_messages(
        session_id: str, request: Request, x_user_id: Optional[str] = Header(default=None)
    ) -> StreamingResponse:
        """Push the full ordered message list on every change (server-sent events)."""
        user_id = require_user(x_user_id)
        context = get_context(request)
        stream = context.messages.stream_messages(user_id, session_id)
        return StreamingResponse(
            snapshot_events(stream, serialize_chat_message),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    @app.post("/api/chat/sessions/{session_id}/repair", response_model=ChatSessionSummary)
    async def repair_chat_session(
        session_id: str, request: Request, x_user_id: Optional[str] = Header(default=None)
    ) -> ChatSessionSummary:
        """Recompute title/last message/updated time from the stored messages."""
        user_id = require_user(x_user_id)
        context = get_context(request)
        try:
            session = await context.messages.repair_session_metadata(user_id, session_id)
        except PERSISTENCE_ERRORS as exc:
            logger.exception("Failed to repair chat session %s: %s", session_id, exc)
            raise HTTPException(status_code=500, detail="Failed to repair session") from exc
        if session is None:
            raise HTTPException(status_code=404, detail="Session not found")
        return serialize_chat_session_summary(session)

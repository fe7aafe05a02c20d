"""Pydantic schemas for the FastAPI server."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.chat_history import MessageRole


class HealthResponse(BaseModel):
    """Response for health check endpoint."""

    status: str


class ChatSessionCreateRequest(BaseModel):
    """Request body for creating a session."""

    title: str = Field(default="", description="Initial title; usually left empty")


class ChatSessionSummary(BaseModel):
    """Chat session metadata for listing/search results."""

    session_id: str
    title: str
    last_message_text: str
    created_at: datetime
    updated_at: datetime


class ChatMessageResponse(BaseModel):
    """One stored message."""

    id: str
    role: MessageRole
    content: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(use_enum_values=True)


class ChatSessionDetail(ChatSessionSummary):
    """Chat session with the full message log."""

    messages: List[ChatMessageResponse]


class ChatRequest(BaseModel):
    """Request body for posting a user message."""

    message: str = Field(..., min_length=1, description="User message")


class ChatTurnResponse(BaseModel):
    """Result of one user turn."""

    user_message_id: str
    assistant_message_id: Optional[str] = None
    reply: str
    fallback: bool = Field(
        default=False, description="True when the responder failed and the fallback was stored"
    )
    metadata_stale: bool = Field(
        default=False, description="True when a message was stored but the session summary was not"
    )


class AgentRequest(BaseModel):
    """Request body for the stateless agent endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    message: Optional[str] = None
    thread_id: Optional[str] = Field(default=None, alias="threadId")


class AgentResponse(BaseModel):
    response: str


class DeleteResponse(BaseModel):
    deleted: bool

"""Stateless agent endpoint: one user message in, one assistant reply out."""

from __future__ import annotations

import asyncio
import logging

from fastapi import FastAPI, HTTPException, Request

from src.ai_responder import AIResponseError

from ..dependencies import get_context
from ..schemas import AgentRequest, AgentResponse

logger = logging.getLogger(__name__)


def register_agent_routes(app: FastAPI) -> None:
    """Register the agent endpoint."""

    @app.post("/api/agent", response_model=AgentResponse)
    async def ask_agent(body: AgentRequest, request: Request) -> AgentResponse:
        """Forward a message to the configured responder without storing it."""
        if not body.message or not body.thread_id:
            raise HTTPException(status_code=400, detail="Message and threadId are required")
        responder = get_context(request).responder
        try:
            reply = await asyncio.to_thread(responder.fetch_response, body.thread_id, body.message)
        except AIResponseError as exc:
            logger.error("Error interacting with agent: %s", exc)
            raise HTTPException(status_code=500, detail="Failed to get response from agent") from exc
        return AgentResponse(response=reply)

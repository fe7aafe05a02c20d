"""Retry policy shared by every caller that turns a responder failure into the fallback reply."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .base import AIResponder, AIResponseError, History

logger = logging.getLogger(__name__)


async def fetch_with_retries(
    responder: AIResponder,
    session_id: str,
    user_text: str,
    history: Optional[History] = None,
    max_retries: int = 1,
) -> Optional[str]:
    """
    Ask ``responder`` for a reply off the event loop, retrying failed attempts.

    Any exception from the responder counts as a failed attempt, and so does a
    blank reply.

    Args:
        responder: reply provider
        session_id: conversation id
        user_text: latest user message
        history: earlier turns
        max_retries: extra attempts after the first

    Returns:
        The reply, or None when every attempt failed
    """
    attempts = max(0, max_retries) + 1
    for attempt in range(1, attempts + 1):
        try:
            reply = await asyncio.to_thread(responder.fetch_response, session_id, user_text, history)
        except AIResponseError as exc:
            logger.warning(
                "AI response attempt %d/%d for %s failed: %s", attempt, attempts, session_id, exc
            )
            continue
        except Exception:
            logger.exception("Responder crashed on attempt %d for %s", attempt, session_id)
            continue
        if isinstance(reply, str) and reply.strip():
            return reply
        logger.warning("AI response attempt %d/%d for %s was empty", attempt, attempts, session_id)
    return None

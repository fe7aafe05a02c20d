"""HTTP client for a hosted reflection agent backend."""

from __future__ import annotations

import logging
from typing import Optional

import requests

from .base import AIResponseError, History

logger = logging.getLogger(__name__)


class HttpAgentResponder:
    """
    Posts ``{"input_text", "thread_id"}`` and reads ``ai_response``.

    The backend keeps the conversation keyed by thread id, so history is not sent.
    """

    def __init__(self, agent_url: str, timeout: float = 60.0, session: Optional[requests.Session] = None):
        """
        Args:
            agent_url: full URL of the agent endpoint
            timeout: request timeout in seconds
            session: requests session (tests inject a mock)
        """
        self.agent_url = agent_url
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch_response(
        self, session_id: str, user_text: str, history: Optional[History] = None
    ) -> str:
        payload = {"input_text": user_text, "thread_id": session_id}
        try:
            response = self.session.post(self.agent_url, json=payload, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"Agent request failed: {e}")
            raise AIResponseError(f"Agent request failed: {e}") from e

        if not response.ok:
            detail = ""
            try:
                detail = response.json().get("detail", "")
            except ValueError:
                logger.error("Agent error response was not JSON")
            raise AIResponseError(
                f"HTTP error! status: {response.status_code}" + (f" - {detail}" if detail else "")
            )

        try:
            data = response.json()
        except ValueError as e:
            raise AIResponseError("Agent response was not JSON") from e
        ai_response = data.get("ai_response") if isinstance(data, dict) else None
        if not isinstance(ai_response, str):
            logger.error(f"ai_response missing from agent response: {data!r}")
            raise AIResponseError("AI response not found or not in the expected format.")
        if not ai_response.strip():
            raise AIResponseError("Agent returned an empty reply")
        return ai_response

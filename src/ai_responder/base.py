"""AI responder contract.

The responder is a black box: user text (plus optional history) in, assistant
text out. Retries are the caller's business.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Protocol

REFLECTION_INSTRUCTIONS = """\
You are a reflection agent. Your purpose is to help users reflect on their day.
Guide the user through three questions, one at a time:
1. How was your day?
2. What went well today?
3. What are you grateful for?
Start with the first question and wait for the user's answer before moving on.
Keep your responses supportive and encouraging."""

FALLBACK_MESSAGE = "Sorry, I encountered an error while generating a response. Please try again."

History = List[Dict[str, str]]


class AIResponseError(Exception):
    """The responder could not produce a reply."""

    pass


class AIResponder(Protocol):
    def fetch_response(
        self, session_id: str, user_text: str, history: Optional[History] = None
    ) -> str:
        """Return the assistant reply for ``user_text`` in ``session_id``.

        Raises:
            AIResponseError: no usable reply
        """
        ...

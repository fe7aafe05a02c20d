"""Assistant reply providers."""

from .base import FALLBACK_MESSAGE, REFLECTION_INSTRUCTIONS, AIResponder, AIResponseError
from .http_agent import HttpAgentResponder
from .ollama_client import OllamaResponder
from .retry import fetch_with_retries

__all__ = [
    "AIResponder",
    "AIResponseError",
    "FALLBACK_MESSAGE",
    "HttpAgentResponder",
    "OllamaResponder",
    "REFLECTION_INSTRUCTIONS",
    "fetch_with_retries",
]

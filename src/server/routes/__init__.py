"""Route registration helpers."""

from .agent import register_agent_routes
from .chat import register_chat_routes

__all__ = [
    "register_agent_routes",
    "register_chat_routes",
]

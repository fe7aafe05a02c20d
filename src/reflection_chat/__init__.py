"""Reflection chat application settings and wiring."""

from .config import AIConfig, ChatConfig, Config, OllamaConfig
from .context import AppContext, create_responder
from .logger import setup_logger

__all__ = [
    "AIConfig",
    "AppContext",
    "ChatConfig",
    "Config",
    "OllamaConfig",
    "create_responder",
    "setup_logger",
]

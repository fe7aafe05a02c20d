"""Application wiring.

Builds the store, repositories and AI responder once; everything else receives
them explicitly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from src.ai_responder import AIResponder, HttpAgentResponder, OllamaResponder
from src.chat_history import MessageRepository, SessionRepository
from src.document_store import DocumentStore, SQLiteDocumentStore

from .config import Config

logger = logging.getLogger(__name__)


def create_responder(config: Config) -> AIResponder:
    """Responder selected by ``config.ai.provider``."""
    provider = config.ai.provider.lower()
    if provider == "ollama":
        return OllamaResponder(
            host=config.ollama.host,
            model=config.ollama.model,
            temperature=config.ai.temperature,
            max_tokens=config.ai.max_tokens,
            system_prompt=config.ai.system_prompt,
        )
    if provider == "http":
        return HttpAgentResponder(config.ai.agent_url, timeout=config.ai.timeout_seconds)
    raise ValueError(f"Unknown AI provider: {config.ai.provider}")


@dataclass
class AppContext:
    """Long-lived collaborators shared by the server and the CLI."""

    config: Config
    store: DocumentStore
    sessions: SessionRepository
    messages: MessageRepository
    responder: AIResponder

    @classmethod
    def from_config(
        cls,
        config: Config,
        store: Optional[DocumentStore] = None,
        responder: Optional[AIResponder] = None,
    ) -> "AppContext":
        store = store or SQLiteDocumentStore(config.db_path)
        responder = responder or create_responder(config)
        logger.info("Using %s responder", type(responder).__name__)
        return cls(
            config=config,
            store=store,
            sessions=SessionRepository(store),
            messages=MessageRepository(store, title_max_length=config.chat.title_max_length),
            responder=responder,
        )

    def close(self) -> None:
        self.store.close()

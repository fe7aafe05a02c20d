"""
Configuration

Related Classes:
  - context.AppContext: builds the store, repositories and responder from it
  - server.dependencies: loads it once at startup
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from src.ai_responder import FALLBACK_MESSAGE
from src.chat_history import TITLE_MAX_LENGTH


@dataclass
class OllamaConfig:
    """Ollama API settings"""

    host: str = "http://localhost:11434"
    model: str = "qwen3:8b"


@dataclass
class AIConfig:
    """Assistant reply settings"""

    provider: str = "ollama"  # ollama | http
    agent_url: str = "http://localhost:8080/post"
    timeout_seconds: float = 60.0
    max_retries: int = 1
    max_tokens: int = 4096
    temperature: float = 0.7
    system_prompt: Optional[str] = None


@dataclass
class ChatConfig:
    """Chat behaviour settings"""

    title_max_length: int = TITLE_MAX_LENGTH
    fallback_message: str = FALLBACK_MESSAGE


@dataclass
class Config:
    """Application settings"""

    ollama: OllamaConfig = None  # type: ignore
    ai: AIConfig = None  # type: ignore
    chat: ChatConfig = None  # type: ignore

    # None -> REFLECTION_CHAT_DB_PATH or data/reflection_chat.db
    db_path: Optional[str] = None

    log_level: str = "INFO"
    log_file: str = "logs/reflection_chat.log"

    def __post_init__(self):
        if self.ollama is None:
            self.ollama = OllamaConfig()
        if self.ai is None:
            self.ai = AIConfig()
        if self.chat is None:
            self.chat = ChatConfig()

    @classmethod
    def from_yaml(cls, config_path: Optional[Path] = None) -> "Config":
        """Load settings from YAML.

        Args:
            config_path: settings file (defaults to config/app_config.yaml)

        Returns:
            Config: settings instance
        """
        if config_path is None:
            project_root = Path(__file__).parent.parent.parent
            config_path = project_root / "config" / "app_config.yaml"

        with open(config_path, "r", encoding="utf-8") as f:
            yaml_data: Dict[str, Any] = yaml.safe_load(f) or {}

        ollama_data = yaml_data.get("ollama", {})
        ai_data = yaml_data.get("ai", {})
        chat_data = yaml_data.get("chat", {})
        store_data = yaml_data.get("store", {})
        log_data = yaml_data.get("log", {})

        system_prompt = None
        system_prompt_file = ai_data.get("system_prompt_file")
        if system_prompt_file:
            prompt_path = Path(config_path).parent.parent / system_prompt_file
            if prompt_path.exists():
                with open(prompt_path, "r", encoding="utf-8") as f:
                    system_prompt = f.read().strip()

        return cls(
            ollama=OllamaConfig(
                host=ollama_data.get("host", "http://localhost:11434"),
                model=ollama_data.get("model", "qwen3:8b"),
            ),
            ai=AIConfig(
                provider=ai_data.get("provider", "ollama"),
                agent_url=ai_data.get("agent_url", "http://localhost:8080/post"),
                timeout_seconds=float(ai_data.get("timeout_seconds", 60.0)),
                max_retries=int(ai_data.get("max_retries", 1)),
                max_tokens=ai_data.get("max_tokens", 4096),
                temperature=ai_data.get("temperature", 0.7),
                system_prompt=system_prompt,
            ),
            chat=ChatConfig(
                title_max_length=chat_data.get("title_max_length", TITLE_MAX_LENGTH),
                fallback_message=chat_data.get("fallback_message", FALLBACK_MESSAGE),
            ),
            db_path=os.getenv("REFLECTION_CHAT_DB_PATH") or store_data.get("db_path"),
            log_level=log_data.get("level", "INFO"),
            log_file=log_data.get("file", "logs/reflection_chat.log"),
        )

    @classmethod
    def from_env(cls) -> "Config":
        """Load settings from environment variables."""
        return cls(
            ollama=OllamaConfig(
                host=os.getenv("OLLAMA_HOST", "http://localhost:11434"),
                model=os.getenv("OLLAMA_MODEL", "qwen3:8b"),
            ),
            ai=AIConfig(
                provider=os.getenv("AI_PROVIDER", "ollama"),
                agent_url=os.getenv("AI_AGENT_URL", "http://localhost:8080/post"),
                timeout_seconds=float(os.getenv("AI_TIMEOUT_SECONDS", "60")),
                max_retries=int(os.getenv("AI_MAX_RETRIES", "1")),
                max_tokens=int(os.getenv("MAX_TOKENS", "4096")),
                temperature=float(os.getenv("TEMPERATURE", "0.7")),
                system_prompt=os.getenv("SYSTEM_PROMPT"),
            ),
            chat=ChatConfig(
                title_max_length=int(os.getenv("TITLE_MAX_LENGTH", str(TITLE_MAX_LENGTH))),
                fallback_message=os.getenv("FALLBACK_MESSAGE", FALLBACK_MESSAGE),
            ),
            db_path=os.getenv("REFLECTION_CHAT_DB_PATH"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_file=os.getenv("LOG_FILE", "logs/reflection_chat.log"),
        )

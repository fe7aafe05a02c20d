"""
Ollama responder

Related Classes:
  - reflection_chat.config.Config: supplies host, model and generation options
  - chat_view.controller.ChatViewController: calls fetch_response
"""

import logging
from typing import Dict, List, Optional

import ollama

from .base import REFLECTION_INSTRUCTIONS, AIResponseError, History


class OllamaResponder:
    """Replies through a local Ollama server, one chat call per user turn."""

    def __init__(
        self,
        host: str = "http://localhost:11434",
        model: str = "llama3.1:8b",
        temperature: float = 0.7,
        max_tokens: int = 4096,
        system_prompt: Optional[str] = None,
        client: Optional[ollama.Client] = None,
    ):
        """
        Args:
            host: Ollama server URL
            model: model name
            temperature: sampling temperature (0.0-1.0)
            max_tokens: maximum tokens to generate
            system_prompt: overrides the reflection instructions
            client: preconfigured client (tests inject a mock)
        """
        self.host = host
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.system_prompt = system_prompt or REFLECTION_INSTRUCTIONS
        self.logger = logging.getLogger(__name__)
        self.client = client or ollama.Client(host=host)

    def build_messages(self, user_text: str, history: Optional[History] = None) -> List[Dict[str, str]]:
        messages = [{"role": "system", "content": self.system_prompt}]
        messages.extend(history or [])
        messages.append({"role": "user", "content": user_text})
        return messages

    def fetch_response(
        self, session_id: str, user_text: str, history: Optional[History] = None
    ) -> str:
        """
        Ask the model for the next assistant turn.

        Args:
            session_id: conversation id (only used for logging; Ollama is stateless)
            user_text: latest user message
            history: earlier turns as [{"role": ..., "content": ...}]

        Returns:
            Assistant reply text
        """
        try:
            response = self.client.chat(
                model=self.model,
                messages=self.build_messages(user_text, history),
                stream=False,
                options={
                    "temperature": self.temperature,
                    "num_predict": self.max_tokens,
                },
            )
            content = (response["message"]["content"] or "").strip()
        except Exception as e:
            self.logger.error(f"Ollama chat error for session {session_id}: {e}")
            raise AIResponseError(f"Ollama request failed: {e}") from e

        if not content:
            raise AIResponseError("Ollama returned an empty reply")
        return content

    def list_models(self) -> List[str]:
        """
        Names of the models available on the server.
        """
        try:
            models = self.client.list()
            return [model["model"] for model in models["models"]]
        except Exception as e:
            self.logger.error(f"Failed to list models: {e}")
            return []

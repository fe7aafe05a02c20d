"""AI responder tests (Ollama and HTTP agent), with mocked transports"""

import asyncio
from unittest.mock import Mock

import pytest
import requests

from src.ai_responder import (
    REFLECTION_INSTRUCTIONS,
    AIResponseError,
    HttpAgentResponder,
    OllamaResponder,
    fetch_with_retries,
)


@pytest.fixture
def ollama_client():
    client = Mock()
    client.chat = Mock(return_value={"message": {"content": "  How was your day?  "}})
    return client


def test_ollama_responder_returns_stripped_text(ollama_client):
    """Ollama replies are stripped and sent with system prompt and history."""
    responder = OllamaResponder(model="test-model", client=ollama_client)

    reply = responder.fetch_response("s1", "Hi", [{"role": "user", "content": "earlier"}])

    assert reply == "How was your day?"
    kwargs = ollama_client.chat.call_args.kwargs
    assert kwargs["model"] == "test-model"
    assert kwargs["messages"] == [
        {"role": "system", "content": REFLECTION_INSTRUCTIONS},
        {"role": "user", "content": "earlier"},
        {"role": "user", "content": "Hi"},
    ]
    assert kwargs["options"]["temperature"] == 0.7


def test_ollama_custom_system_prompt(ollama_client):
    """A configured system prompt replaces the reflection instructions."""
    responder = OllamaResponder(client=ollama_client, system_prompt="Be brief.")
    assert responder.build_messages("Hi")[0] == {"role": "system", "content": "Be brief."}


def test_ollama_errors_become_ai_response_error(ollama_client):
    """Client exceptions surface as AIResponseError."""
    ollama_client.chat.side_effect = ConnectionError("refused")
    responder = OllamaResponder(client=ollama_client)

    with pytest.raises(AIResponseError):
        responder.fetch_response("s1", "Hi")


def test_ollama_empty_reply_is_an_error(ollama_client):
    """A whitespace-only reply is rejected."""
    ollama_client.chat.return_value = {"message": {"content": "   "}}
    responder = OllamaResponder(client=ollama_client)

    with pytest.raises(AIResponseError):
        responder.fetch_response("s1", "Hi")


def test_ollama_list_models(ollama_client):
    """Model names are listed; failures yield an empty list."""
    ollama_client.list.return_value = {"models": [{"model": "qwen3:8b"}, {"model": "llama3.1:8b"}]}
    responder = OllamaResponder(client=ollama_client)
    assert responder.list_models() == ["qwen3:8b", "llama3.1:8b"]

    ollama_client.list.side_effect = RuntimeError("down")
    assert responder.list_models() == []


def make_http_response(ok=True, status_code=200, payload=None, json_error=False):
    response = Mock()
    response.ok = ok
    response.status_code = status_code
    if json_error:
        response.json.side_effect = ValueError("not json")
    else:
        response.json.return_value = payload
    return response


def test_http_agent_posts_thread_and_text():
    """The agent receives input_text and thread_id."""
    session = Mock()
    session.post.return_value = make_http_response(payload={"ai_response": "What went well?"})
    responder = HttpAgentResponder("http://agent/post", timeout=5, session=session)

    assert responder.fetch_response("thread-1", "I had a good day") == "What went well?"
    session.post.assert_called_once_with(
        "http://agent/post",
        json={"input_text": "I had a good day", "thread_id": "thread-1"},
        timeout=5,
    )


def test_http_agent_error_status_includes_detail():
    """Error statuses carry the backend detail."""
    session = Mock()
    session.post.return_value = make_http_response(
        ok=False, status_code=503, payload={"detail": "warming up"}
    )
    responder = HttpAgentResponder("http://agent/post", session=session)

    with pytest.raises(AIResponseError, match="503 - warming up"):
        responder.fetch_response("t", "hi")


def test_http_agent_error_status_without_json():
    """Error statuses without a JSON body still raise."""
    session = Mock()
    session.post.return_value = make_http_response(ok=False, status_code=500, json_error=True)
    responder = HttpAgentResponder("http://agent/post", session=session)

    with pytest.raises(AIResponseError, match="status: 500"):
        responder.fetch_response("t", "hi")


def test_http_agent_missing_ai_response():
    """A body without ai_response is rejected."""
    session = Mock()
    session.post.return_value = make_http_response(payload={"something": "else"})
    responder = HttpAgentResponder("http://agent/post", session=session)

    with pytest.raises(AIResponseError, match="expected format"):
        responder.fetch_response("t", "hi")


def test_http_agent_network_error():
    """Network failures surface as AIResponseError."""
    session = Mock()
    session.post.side_effect = requests.exceptions.ConnectionError("refused")
    responder = HttpAgentResponder("http://agent/post", session=session)

    with pytest.raises(AIResponseError):
        responder.fetch_response("t", "hi")


def test_ollama_malformed_response_is_an_error(ollama_client):
    """A response without message content is reported as AIResponseError."""
    ollama_client.chat.return_value = {"done": True}
    responder = OllamaResponder(client=ollama_client)

    with pytest.raises(AIResponseError):
        responder.fetch_response("s1", "Hi")


def test_http_agent_blank_reply_is_an_error():
    """A blank ai_response is not a usable reply."""
    session = Mock()
    session.post.return_value = make_http_response(payload={"ai_response": "  "})
    responder = HttpAgentResponder("http://agent/post", session=session)

    with pytest.raises(AIResponseError, match="empty"):
        responder.fetch_response("t", "hi")


def test_fetch_with_retries_recovers_from_any_failure():
    """Errors and blank replies count as failed attempts."""
    responder = Mock()
    responder.fetch_response.side_effect = [RuntimeError("bug"), " ", "Third time"]

    reply = asyncio.run(fetch_with_retries(responder, "s1", "Hi", [], max_retries=2))

    assert reply == "Third time"
    assert responder.fetch_response.call_count == 3


def test_fetch_with_retries_gives_up():
    """None is returned once every attempt has failed."""
    responder = Mock()
    responder.fetch_response.side_effect = AIResponseError("down")

    assert asyncio.run(fetch_with_retries(responder, "s1", "Hi", max_retries=0)) is None
    responder.fetch_response.assert_called_once_with("s1", "Hi", None)

"""ChatViewController tests

Runs the controller against a temporary SQLite store with a mocked responder.
"""

import asyncio
from unittest.mock import Mock

import pytest

from src.ai_responder import AIResponseError
from src.chat_history import (
    MessageAppendError,
    MessageRepository,
    MessageRole,
    MessageStatus,
    SessionRepository,
)
from src.chat_view import ChatViewController
from src.document_store import DocumentStoreError, SQLiteDocumentStore

USER = "user-1"
FALLBACK = "Sorry, I encountered an error..."


@pytest.fixture
def store(tmp_path):
    store = SQLiteDocumentStore(db_path=tmp_path / "controller.db")
    yield store
    store.close()


@pytest.fixture
def responder():
    responder = Mock()
    responder.fetch_response = Mock(return_value="How was your day?")
    return responder


def make_controller(store, responder, **kwargs):
    return ChatViewController(
        USER,
        SessionRepository(store),
        MessageRepository(store),
        responder,
        fallback_message=FALLBACK,
        **kwargs,
    )


async def settle():
    for _ in range(5):
        await asyncio.sleep(0)


def message_watch_count(store):
    return sum(len(w) for path, w in store._watches.items() if path.endswith("/messages"))


def test_first_message_creates_session_and_reply(store, responder):
    """The first message creates a session and stores the reply."""
    async def scenario():
        controller = make_controller(store, responder)
        controller.start()
        ok = await controller.submit_message("Hello")
        await settle()
        controller.close()
        return controller, ok

    controller, ok = asyncio.run(scenario())

    assert ok is True
    assert controller.error is None
    assert [(m.role, m.content) for m in controller.messages] == [
        (MessageRole.USER, "Hello"),
        (MessageRole.ASSISTANT, "How was your day?"),
    ]
    assert all(m.status is MessageStatus.CONFIRMED for m in controller.messages)
    assert len(controller.sessions) == 1
    assert controller.sessions[0].title == "Hello"
    assert controller.sessions[0].last_message_text == "How was your day?"
    responder.fetch_response.assert_called_once_with(controller.active_session_id, "Hello", [])


def test_optimistic_state_while_waiting_for_reply(store, responder):
    """The user message and a placeholder show while waiting."""
    seen = {}

    async def scenario():
        controller = make_controller(store, responder)

        def fetch(session_id, text, history):
            seen["messages"] = controller.messages
            return "Reply"

        responder.fetch_response.side_effect = fetch
        await controller.submit_message("Hello")
        await settle()
        controller.close()
        return controller

    controller = asyncio.run(scenario())

    during = seen["messages"]
    assert [m.content for m in during] == ["Hello", "…"]
    assert during[0].status is MessageStatus.CONFIRMED
    assert during[1].status is MessageStatus.PENDING_LOCAL
    assert [m.content for m in controller.messages] == ["Hello", "Reply"]


def test_history_is_passed_on_later_turns(store, responder):
    """Confirmed turns are passed to the responder."""
    async def scenario():
        controller = make_controller(store, responder)
        await controller.submit_message("Fine")
        await settle()
        await controller.submit_message("Sunny weather")
        await settle()
        controller.close()

    asyncio.run(scenario())

    _, _, history = responder.fetch_response.call_args.args
    assert history == [
        {"role": "user", "content": "Fine"},
        {"role": "assistant", "content": "How was your day?"},
    ]


def test_blank_input_is_ignored(store, responder):
    """Blank input does nothing."""
    async def scenario():
        controller = make_controller(store, responder)
        return controller, await controller.submit_message("   ")

    controller, ok = asyncio.run(scenario())
    assert ok is False
    assert controller.active_session_id is None
    responder.fetch_response.assert_not_called()


def test_responder_failure_persists_fallback(store, responder):
    """Exhausted retries store the fallback and set an error."""
    responder.fetch_response.side_effect = AIResponseError("backend down")

    async def scenario():
        controller = make_controller(store, responder, ai_max_retries=2)
        ok = await controller.submit_message("Hello")
        await settle()
        controller.close()
        return controller, ok

    controller, ok = asyncio.run(scenario())

    assert ok is True
    assert responder.fetch_response.call_count == 3
    assert controller.error is not None
    assert [(m.role, m.content) for m in controller.messages] == [
        (MessageRole.USER, "Hello"),
        (MessageRole.ASSISTANT, FALLBACK),
    ]


def test_responder_retry_recovers(store, responder):
    """A retry can still produce the reply."""
    responder.fetch_response.side_effect = [AIResponseError("flaky"), "Second try"]

    async def scenario():
        controller = make_controller(store, responder, ai_max_retries=1)
        await controller.submit_message("Hello")
        await settle()
        controller.close()
        return controller

    controller = asyncio.run(scenario())
    assert controller.error is None
    assert controller.messages[-1].content == "Second try"


def test_failed_send_leaves_message_pending(store, responder, monkeypatch):
    """An unsaved message stays visible as pending."""
    async def scenario():
        controller = make_controller(store, responder)
        await controller.new_chat()

        async def failing_append(*args, **kwargs):
            raise MessageAppendError("offline")

        monkeypatch.setattr(controller._messages_repo, "append_message", failing_append)
        ok = await controller.submit_message("Lost in transit")
        await settle()
        controller.close()
        return controller, ok

    controller, ok = asyncio.run(scenario())

    assert ok is False
    assert controller.error == "Message could not be saved. Please try again."
    assert [(m.content, m.status) for m in controller.messages] == [
        ("Lost in transit", MessageStatus.PENDING_LOCAL)
    ]
    responder.fetch_response.assert_not_called()


def test_switching_sessions_keeps_one_message_subscription(store, responder):
    """Switching never leaves more than one message subscription."""
    async def scenario():
        controller = make_controller(store, responder)
        first = await controller.new_chat()
        await controller.submit_message("In the first chat")
        second = await controller.new_chat()
        await settle()
        counts = [message_watch_count(store)]

        controller.switch_session(first)
        await settle()
        counts.append(message_watch_count(store))
        shown = [m.content for m in controller.messages]

        controller.switch_session(second)
        await settle()
        counts.append(message_watch_count(store))
        controller.close()
        counts.append(message_watch_count(store))
        return counts, shown, controller

    counts, shown, controller = asyncio.run(scenario())
    assert counts == [1, 1, 1, 0]
    assert shown == ["In the first chat", "How was your day?"]
    assert controller.messages == []


def test_delete_active_chat(store, responder):
    """Deleting the open chat clears the view."""
    async def scenario():
        controller = make_controller(store, responder)
        controller.start()
        await controller.submit_message("Delete me")
        session_id = controller.active_session_id
        deleted = await controller.delete_chat(session_id)
        await settle()
        controller.close()
        return controller, deleted

    controller, deleted = asyncio.run(scenario())
    assert deleted is True
    assert controller.active_session_id is None
    assert controller.sessions == []
    assert controller.messages == []


def test_on_change_is_notified(store, responder):
    """on_change fires as state changes."""
    changes = []

    async def scenario():
        controller = make_controller(store, responder, on_change=lambda c: changes.append(len(c.messages)))
        await controller.submit_message("Hello")
        await settle()
        controller.close()

    asyncio.run(scenario())
    assert changes
    assert changes[-1] == 2


def test_store_shutdown_is_surfaced_as_error(tmp_path, responder):
    """Store shutdown shows an inline error."""
    store = SQLiteDocumentStore(db_path=tmp_path / "closing.db")

    async def scenario():
        controller = make_controller(store, responder)
        controller.start()
        await controller.new_chat()
        await settle()
        store.close()
        await settle()
        return controller

    controller = asyncio.run(scenario())
    assert controller.error in ("Failed to load chat history.", "Failed to load chat messages.")


def test_close_is_idempotent(store, responder):
    """close() can be called twice."""
    controller = make_controller(store, responder)
    controller.start()
    controller.close()
    controller.close()
    assert message_watch_count(store) == 0


def test_resubscribe_after_subscription_failure(store, responder):
    """resubscribe() restores live updates after a failure."""
    async def scenario():
        controller = make_controller(store, responder)
        controller.start()
        session_id = await controller.new_chat()
        await settle()
        controller._sessions_sub.fail(DocumentStoreError("permission denied"))
        controller._messages_sub.fail(DocumentStoreError("permission denied"))
        await settle()
        error = controller.error

        controller.resubscribe()
        await controller.submit_message("Back online")
        await settle()
        controller.close()
        return controller, error, session_id

    controller, error, session_id = asyncio.run(scenario())
    assert error is not None
    assert controller.active_session_id == session_id
    assert [m.content for m in controller.messages] == ["Back online", "How was your day?"]
    assert controller.sessions[0].title == "Back online"


def test_stale_session_metadata_is_repaired(store, responder, monkeypatch):
    """A message stored without its session summary triggers a repair pass."""

    async def scenario():
        controller = make_controller(store, responder)
        controller.start()
        await controller.new_chat()
        repo = controller._messages_repo
        touch = repo._touch_session
        calls = []

        def flaky_touch(*args):
            calls.append(args)
            if len(calls) == 1:
                raise DocumentStoreError("quota exceeded")
            return touch(*args)

        monkeypatch.setattr(repo, "_touch_session", flaky_touch)
        ok = await controller.submit_message("Hello")
        await settle()
        controller.close()
        return controller, ok

    controller, ok = asyncio.run(scenario())

    assert ok is True
    assert controller.error is None
    assert controller.sessions[0].title == "Hello"
    assert controller.sessions[0].last_message_text == "How was your day?"
    assert [m.content for m in controller.messages] == ["Hello", "How was your day?"]


def test_failed_metadata_repair_is_shown_inline(store, responder, monkeypatch):
    """When the repair pass also fails the user sees an inline notice."""

    async def scenario():
        controller = make_controller(store, responder)
        controller.start()
        await controller.new_chat()
        repo = controller._messages_repo

        def failing_touch(*args):
            raise DocumentStoreError("quota exceeded")

        async def failing_repair(*args):
            raise DocumentStoreError("quota exceeded")

        monkeypatch.setattr(repo, "_touch_session", failing_touch)
        monkeypatch.setattr(repo, "repair_session_metadata", failing_repair)
        ok = await controller.submit_message("Hello")
        await settle()
        controller.close()
        return controller, ok

    controller, ok = asyncio.run(scenario())

    assert ok is True
    assert controller.error == "Message saved, but the chat list could not be updated."
    assert [(m.content, m.status) for m in controller.messages] == [
        ("Hello", MessageStatus.CONFIRMED),
        ("How was your day?", MessageStatus.CONFIRMED),
    ]
    assert controller.sessions[0].title == ""


def test_responder_crash_falls_back(store, responder):
    """Unexpected responder exceptions are retried and end in the fallback reply."""
    responder.fetch_response.side_effect = RuntimeError("bug")

    async def scenario():
        controller = make_controller(store, responder, ai_max_retries=1)
        await controller.submit_message("Hello")
        await settle()
        controller.close()
        return controller

    controller = asyncio.run(scenario())
    assert responder.fetch_response.call_count == 2
    assert controller.messages[-1].content == FALLBACK
    assert controller.error == "The assistant could not respond. Please try again."

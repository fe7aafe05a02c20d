"""OptimisticMessageList unit tests"""

from datetime import datetime, timezone

from src.chat_history import ChatMessage, MessageRole, MessageStatus
from src.chat_view import OptimisticMessageList


def confirmed(message_id, role, content, second=0):
    return ChatMessage(
        id=message_id,
        role=role,
        content=content,
        created_at=datetime(2025, 1, 1, 0, 0, second, tzinfo=timezone.utc),
    )


def test_pending_message_is_shown_immediately():
    """A pending message is displayed at once."""
    lst = OptimisticMessageList()
    pending = lst.add_pending(MessageRole.USER, "Hello")

    assert pending.id.startswith("local-user-")
    assert pending.status is MessageStatus.PENDING_LOCAL
    assert lst.displayed == [pending]


def test_temporary_ids_are_unique():
    """Temporary ids never collide."""
    lst = OptimisticMessageList()
    ids = {lst.add_pending(MessageRole.USER, "x").id for _ in range(50)}
    assert len(ids) == 50


def test_snapshot_after_confirm_replaces_pending_entry():
    """Confirm, then snapshot: one entry."""
    lst = OptimisticMessageList()
    pending = lst.add_pending(MessageRole.USER, "Hello")
    lst.confirm(pending.id, "m1")

    lst.apply_snapshot([confirmed("m1", MessageRole.USER, "Hello")])

    assert [(m.id, m.status) for m in lst.displayed] == [("m1", MessageStatus.CONFIRMED)]
    assert lst.pending == []


def test_snapshot_before_confirm_flickers_then_settles():
    """Snapshot, then confirm: duplicate collapses."""
    lst = OptimisticMessageList()
    pending = lst.add_pending(MessageRole.USER, "Hello")

    lst.apply_snapshot([confirmed("m1", MessageRole.USER, "Hello")])
    # brief duplicate until the write is acknowledged
    assert [m.content for m in lst.displayed] == ["Hello", "Hello"]

    lst.confirm(pending.id, "m1")
    assert [m.id for m in lst.displayed] == ["m1"]


def test_snapshot_replaces_list_wholesale():
    """Each snapshot replaces the confirmed list."""
    lst = OptimisticMessageList()
    lst.apply_snapshot([confirmed("a", MessageRole.USER, "old")])
    lst.apply_snapshot([confirmed("b", MessageRole.USER, "new", 1)])

    assert [m.id for m in lst.displayed] == ["b"]


def test_unconfirmed_message_stays_visible_across_snapshots():
    """Unconfirmed messages stay after newer snapshots."""
    lst = OptimisticMessageList()
    lst.apply_snapshot([confirmed("m1", MessageRole.USER, "Earlier")])
    failed = lst.add_pending(MessageRole.USER, "never saved")

    lst.apply_snapshot([confirmed("m1", MessageRole.USER, "Earlier")])

    assert [m.id for m in lst.displayed] == ["m1", failed.id]
    assert lst.displayed[-1].is_pending


def test_placeholder_takes_stored_content_on_confirm():
    """The placeholder shows the stored reply once confirmed."""
    lst = OptimisticMessageList()
    placeholder = lst.add_pending(MessageRole.ASSISTANT, "…")
    lst.confirm(placeholder.id, "a1", content="How was your day?")

    assert lst.displayed[-1].content == "How was your day?"
    assert lst.displayed[-1].confirmed_id == "a1"


def test_confirm_unknown_id_is_ignored():
    """Confirming an unknown id is a no-op."""
    lst = OptimisticMessageList()
    lst.confirm("local-user-0", "m1")
    assert lst.displayed == []


def test_discard_and_clear():
    """discard() and clear()"""
    lst = OptimisticMessageList()
    pending = lst.add_pending(MessageRole.USER, "draft")
    lst.discard(pending.id)
    assert lst.displayed == []

    lst.add_pending(MessageRole.USER, "again")
    lst.apply_snapshot([confirmed("m1", MessageRole.USER, "x")])
    lst.clear()
    assert lst.displayed == []
    assert lst.pending == []


def test_displayed_is_a_copy():
    """displayed returns a copy."""
    lst = OptimisticMessageList()
    lst.add_pending(MessageRole.USER, "Hello")
    lst.displayed.clear()
    assert len(lst.displayed) == 1

"""Live query subscriptions.

A ``Subscription`` is the disposer returned by ``DocumentStore.watch``. It
receives full ordered snapshots of one collection until it is unsubscribed or
fails. ``SnapshotStream`` wraps the same mechanism as an async iterator.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, AsyncIterator, Callable, Generic, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

SnapshotCallback = Callable[[List[Any]], None]
ErrorCallback = Callable[[BaseException], None]


class Subscription:
    """Handle for one live query.

    Deliveries are marshalled onto ``loop`` when one is given, otherwise they
    run on the writer's thread. The active flag is checked at delivery time, so
    nothing reaches the callbacks after ``unsubscribe`` returns on the loop.
    """

    def __init__(
        self,
        path: str,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        on_dispose: Optional[Callable[["Subscription"], None]] = None,
    ):
        self.path = path
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._loop = loop
        self._on_dispose = on_dispose
        self._active = True
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self._active

    def __call__(self) -> None:
        self.unsubscribe()

    def unsubscribe(self) -> None:
        """Stop further deliveries. Safe to call any number of times."""
        with self._lock:
            if not self._active:
                return
            self._active = False
            dispose, self._on_dispose = self._on_dispose, None
        logger.debug("Unsubscribed from %s", self.path)
        if dispose is not None:
            dispose(self)

    def deliver(self, snapshot: List[Any]) -> None:
        """Hand a snapshot to the listener (called by the store under its lock)."""
        self._schedule(self._emit_snapshot, snapshot)

    def fail(self, error: BaseException) -> None:
        """Report an unrecoverable error and terminate the subscription."""
        if not self._active:
            return
        logger.warning("Subscription to %s failed: %s", self.path, error)
        self._schedule(self._emit_error, error)
        self.unsubscribe()

    def _schedule(self, func: Callable[[Any], None], value: Any) -> None:
        if not self._active:
            return
        if self._loop is None:
            func(value)
            return
        try:
            self._loop.call_soon_threadsafe(func, value)
        except RuntimeError:
            # event loop already closed
            self.unsubscribe()

    def _emit_snapshot(self, snapshot: List[Any]) -> None:
        if not self._active:
            return
        try:
            self._on_snapshot(snapshot)
        except Exception:
            logger.exception("Snapshot listener for %s raised", self.path)

    def _emit_error(self, error: BaseException) -> None:
        # Already inactive here; the error is the final delivery.
        if self._on_error is None:
            logger.error("Unhandled subscription error on %s: %s", self.path, error)
            return
        try:
            self._on_error(error)
        except Exception:
            logger.exception("Error listener for %s raised", self.path)


class SnapshotStream(Generic[T]):
    """Async iterator over full snapshots of a live query.

    ``subscribe`` is called with ``(on_snapshot, on_error)`` once iteration
    starts and must return a ``Subscription`` delivering on the running loop.

    Usage::

        stream = repo.stream_messages(user_id, session_id)
        async for messages in stream:
            render(messages)
    """

    _CLOSED = object()

    def __init__(
        self,
        subscribe: Callable[[Callable[[T], None], ErrorCallback], Subscription],
    ):
        self._subscribe = subscribe
        self._subscription: Optional[Subscription] = None
        self._queue: Optional[asyncio.Queue] = None
        self._closed = False

    def _ensure_started(self) -> asyncio.Queue:
        if self._queue is None:
            self._queue = asyncio.Queue()
            self._subscription = self._subscribe(self._queue.put_nowait, self._on_error)
        return self._queue

    def _on_error(self, error: BaseException) -> None:
        if self._queue is not None:
            self._queue.put_nowait(error)

    def __aiter__(self) -> AsyncIterator[T]:
        return self

    async def __anext__(self) -> T:
        if self._closed:
            raise StopAsyncIteration
        queue = self._ensure_started()
        item = await queue.get()
        if item is self._CLOSED:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            self._closed = True
            raise item
        return item

    def close(self) -> None:
        """Unsubscribe and end iteration. Idempotent."""
        if self._closed:
            return
        self._closed = True
        if self._subscription is not None:
            self._subscription.unsubscribe()
        if self._queue is not None:
            self._queue.put_nowait(self._CLOSED)

    async def __aenter__(self) -> "SnapshotStream[T]":
        self._ensure_started()
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()

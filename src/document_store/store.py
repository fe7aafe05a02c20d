"""Document store client.

``DocumentStore`` is the contract the repositories rely on: path-addressed
schemaless documents, ordered queries over one field, and live subscriptions
delivering full snapshots. ``SQLiteDocumentStore`` implements it on a local
SQLite file; a managed database client only needs to satisfy the same protocol.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sqlite3
import threading
import uuid
from contextlib import closing
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from .exceptions import DocumentNotFoundError, DocumentStoreError, StoreClosedError
from .paths import parent_and_id, validate_collection_path
from .subscription import ErrorCallback, SnapshotCallback, Subscription

logger = logging.getLogger(__name__)


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()
"""Sentinel replaced by the store clock when a document is written."""


def encode_timestamp(value: datetime) -> str:
    """Fixed-width UTC ISO8601 so that string order equals time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


class StoreClock:
    """Strictly monotonic UTC clock."""

    def __init__(self):
        self._last: Optional[datetime] = None
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            current = datetime.now(timezone.utc)
            if self._last is not None and current <= self._last:
                current = self._last + timedelta(microseconds=1)
            self._last = current
            return current


@dataclass(frozen=True)
class DocumentSnapshot:
    """A document as read from the store."""

    id: str
    path: str
    data: Dict[str, Any] = field(default_factory=dict)
    seq: int = 0


class DocumentStore(Protocol):
    """Operations the chat repositories need from a document database."""

    def add(self, collection: str, data: Dict[str, Any]) -> DocumentSnapshot: ...

    def set(self, doc_path: str, data: Dict[str, Any]) -> DocumentSnapshot: ...

    def update(self, doc_path: str, data: Dict[str, Any]) -> DocumentSnapshot: ...

    def get(self, doc_path: str) -> Optional[DocumentSnapshot]: ...

    def delete(self, doc_path: str) -> bool: ...

    def query(
        self, collection: str, order_by: str, descending: bool = False
    ) -> List[DocumentSnapshot]: ...

    def watch(
        self,
        collection: str,
        order_by: str,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
        descending: bool = False,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> Subscription: ...

    def close(self) -> None: ...


@dataclass
class _Watch:
    subscription: Subscription
    order_by: str
    descending: bool


def _sort_key(order_by: str):
    def key(snapshot: DocumentSnapshot):
        value = snapshot.data.get(order_by)
        # Documents missing the field sort first, like an index on null.
        return (value is not None, value if value is not None else "", snapshot.seq)

    return key


class SQLiteDocumentStore:
    """SQLite-backed document store with live snapshot listeners."""

    def __init__(self, db_path: Optional[Path] = None, clock: Optional[StoreClock] = None):
        root = Path(__file__).resolve().parents[2]
        default_path = root / "data" / "reflection_chat.db"
        env_path = os.getenv("REFLECTION_CHAT_DB_PATH")
        if db_path:
            self.db_path = Path(db_path)
        elif env_path:
            self.db_path = Path(env_path)
        else:
            self.db_path = default_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.clock = clock or StoreClock()
        self._lock = threading.RLock()
        self._watches: Dict[str, List[_Watch]] = {}
        self._closed = False
        self._initialize()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _initialize(self) -> None:
        with closing(self._connect()) as conn, conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    path TEXT NOT NULL UNIQUE,
                    collection TEXT NOT NULL,
                    doc_id TEXT NOT NULL,
                    data_json TEXT NOT NULL
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection)"
            )

    # ------------------------------------------------------------------ helpers

    def _check_open(self) -> None:
        if self._closed:
            raise StoreClosedError(f"Store {self.db_path} is closed")

    def _resolve(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Replace sentinels and encode timestamps; one clock reading per write.

        Called inside ``_write`` so that stamps follow commit order.
        """
        now: Optional[datetime] = None
        resolved: Dict[str, Any] = {}
        for key, value in data.items():
            if value is SERVER_TIMESTAMP:
                if now is None:
                    now = self.clock.now()
                value = encode_timestamp(now)
            elif isinstance(value, datetime):
                value = encode_timestamp(value)
            resolved[key] = value
        return resolved

    @staticmethod
    def _row_to_snapshot(row: sqlite3.Row) -> DocumentSnapshot:
        return DocumentSnapshot(
            id=row["doc_id"],
            path=row["path"],
            data=json.loads(row["data_json"]),
            seq=row["seq"],
        )

    def _fetch(self, conn: sqlite3.Connection, doc_path: str) -> Optional[DocumentSnapshot]:
        row = conn.execute("SELECT * FROM documents WHERE path = ?", (doc_path,)).fetchone()
        return self._row_to_snapshot(row) if row else None

    def _query(self, collection: str, order_by: str, descending: bool) -> List[DocumentSnapshot]:
        with closing(self._connect()) as conn:
            rows = conn.execute(
                "SELECT * FROM documents WHERE collection = ?", (collection,)
            ).fetchall()
        snapshots = [self._row_to_snapshot(row) for row in rows]
        snapshots.sort(key=_sort_key(order_by), reverse=descending)
        return snapshots

    def _write(self, collection: str, func):
        """Run a write under the store lock and notify listeners of ``collection``."""
        with self._lock:
            self._check_open()
            try:
                with closing(self._connect()) as conn, conn:
                    result = func(conn)
            except sqlite3.Error as exc:
                raise DocumentStoreError(f"Write to {collection} failed: {exc}") from exc
            self._notify(collection)
            return result

    def _notify(self, collection: str) -> None:
        for watch in list(self._watches.get(collection, [])):
            self._push(collection, watch)

    def _push(self, collection: str, watch: _Watch) -> None:
        try:
            snapshot = self._query(collection, watch.order_by, watch.descending)
        except (sqlite3.Error, TypeError, ValueError) as exc:
            watch.subscription.fail(DocumentStoreError(f"Snapshot of {collection} failed: {exc}"))
            return
        watch.subscription.deliver(snapshot)

    def _dispose(self, collection: str, subscription: Subscription) -> None:
        with self._lock:
            watches = self._watches.get(collection, [])
            self._watches[collection] = [w for w in watches if w.subscription is not subscription]
            if not self._watches[collection]:
                self._watches.pop(collection, None)

    # --------------------------------------------------------------- operations

    def add(self, collection: str, data: Dict[str, Any]) -> DocumentSnapshot:
        """Insert a document with a store-assigned id."""
        validate_collection_path(collection)
        doc_id = uuid.uuid4().hex
        doc_path = f"{collection}/{doc_id}"

        def insert(conn: sqlite3.Connection) -> DocumentSnapshot:
            resolved = self._resolve(data)
            conn.execute(
                "INSERT INTO documents (path, collection, doc_id, data_json) VALUES (?, ?, ?, ?)",
                (doc_path, collection, doc_id, json.dumps(resolved, ensure_ascii=False)),
            )
            return self._fetch(conn, doc_path)

        return self._write(collection, insert)

    def set(self, doc_path: str, data: Dict[str, Any]) -> DocumentSnapshot:
        """Create or overwrite a document, keeping its original insertion order."""
        collection, doc_id = parent_and_id(doc_path)

        def upsert(conn: sqlite3.Connection) -> DocumentSnapshot:
            resolved = self._resolve(data)
            conn.execute(
                """
                INSERT INTO documents (path, collection, doc_id, data_json)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(path) DO UPDATE SET data_json = excluded.data_json
                """,
                (doc_path, collection, doc_id, json.dumps(resolved, ensure_ascii=False)),
            )
            return self._fetch(conn, doc_path)

        return self._write(collection, upsert)

    def update(self, doc_path: str, data: Dict[str, Any]) -> DocumentSnapshot:
        """Merge fields into an existing document.

        Raises:
            DocumentNotFoundError: the document does not exist
        """
        collection, _ = parent_and_id(doc_path)

        def merge(conn: sqlite3.Connection) -> DocumentSnapshot:
            current = self._fetch(conn, doc_path)
            if current is None:
                raise DocumentNotFoundError(doc_path)
            resolved = self._resolve(data)
            merged = {**current.data, **resolved}
            conn.execute(
                "UPDATE documents SET data_json = ? WHERE path = ?",
                (json.dumps(merged, ensure_ascii=False), doc_path),
            )
            return self._fetch(conn, doc_path)

        return self._write(collection, merge)

    def get(self, doc_path: str) -> Optional[DocumentSnapshot]:
        parent_and_id(doc_path)
        self._check_open()
        try:
            with closing(self._connect()) as conn:
                return self._fetch(conn, doc_path)
        except sqlite3.Error as exc:
            raise DocumentStoreError(f"Read of {doc_path} failed: {exc}") from exc

    def delete(self, doc_path: str) -> bool:
        """Delete a document. Returns False when it did not exist."""
        collection, _ = parent_and_id(doc_path)

        def remove(conn: sqlite3.Connection) -> bool:
            cursor = conn.execute("DELETE FROM documents WHERE path = ?", (doc_path,))
            return cursor.rowcount > 0

        return self._write(collection, remove)

    def query(
        self, collection: str, order_by: str, descending: bool = False
    ) -> List[DocumentSnapshot]:
        """All documents of a collection ordered by one field, ties by insertion."""
        validate_collection_path(collection)
        self._check_open()
        try:
            return self._query(collection, order_by, descending)
        except sqlite3.Error as exc:
            raise DocumentStoreError(f"Query of {collection} failed: {exc}") from exc

    def watch(
        self,
        collection: str,
        order_by: str,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
        descending: bool = False,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> Subscription:
        """Start a live query; the initial snapshot is delivered right away."""
        validate_collection_path(collection)
        subscription = Subscription(
            collection,
            on_snapshot,
            on_error,
            loop=loop,
            on_dispose=lambda sub: self._dispose(collection, sub),
        )
        with self._lock:
            self._check_open()
            watch = _Watch(subscription, order_by, descending)
            self._watches.setdefault(collection, []).append(watch)
            logger.debug("Watching %s ordered by %s", collection, order_by)
            self._push(collection, watch)
        return subscription

    def close(self) -> None:
        """Close the store and terminate every live subscription."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            watches = [w for group in self._watches.values() for w in group]
            self._watches.clear()
        for watch in watches:
            watch.subscription.fail(StoreClosedError(f"Store {self.db_path} closed"))

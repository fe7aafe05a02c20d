"""Path-addressed document store with live snapshot subscriptions."""

from .exceptions import (
    DocumentNotFoundError,
    DocumentStoreError,
    InvalidPathError,
    StoreClosedError,
)
from .paths import collection_path, document_path, parent_and_id, split_path
from .store import (
    SERVER_TIMESTAMP,
    DocumentSnapshot,
    DocumentStore,
    SQLiteDocumentStore,
    StoreClock,
    encode_timestamp,
)
from .subscription import SnapshotStream, Subscription

__all__ = [
    "DocumentNotFoundError",
    "DocumentSnapshot",
    "DocumentStore",
    "DocumentStoreError",
    "InvalidPathError",
    "SERVER_TIMESTAMP",
    "SQLiteDocumentStore",
    "SnapshotStream",
    "StoreClock",
    "StoreClosedError",
    "Subscription",
    "collection_path",
    "document_path",
    "encode_timestamp",
    "parent_and_id",
    "split_path",
]

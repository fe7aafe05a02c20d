"""Hierarchical path helpers.

Paths alternate collection and document segments:
``users/{uid}/chatHistory/{chatId}/messages/{messageId}``. A collection path has
an odd number of segments, a document path an even number.
"""

from __future__ import annotations

from typing import List, Tuple

from .exceptions import InvalidPathError

SEPARATOR = "/"


def _check_segment(segment: str) -> str:
    if not isinstance(segment, str) or not segment:
        raise InvalidPathError(f"Path segment must be a non-empty string: {segment!r}")
    if SEPARATOR in segment:
        raise InvalidPathError(f"Path segment must not contain '/': {segment!r}")
    return segment


def split_path(path: str) -> List[str]:
    """Split a path into validated segments."""
    if not path:
        raise InvalidPathError("Path must not be empty")
    return [_check_segment(segment) for segment in path.split(SEPARATOR)]


def collection_path(*segments: str) -> str:
    """Join segments into a collection path (odd segment count)."""
    parts = [_check_segment(segment) for segment in segments]
    if len(parts) % 2 != 1:
        raise InvalidPathError(
            f"Collection path needs an odd number of segments: {SEPARATOR.join(parts)}"
        )
    return SEPARATOR.join(parts)


def document_path(*segments: str) -> str:
    """Join segments into a document path (even segment count)."""
    parts = [_check_segment(segment) for segment in segments]
    if not parts or len(parts) % 2 != 0:
        raise InvalidPathError(
            f"Document path needs an even number of segments: {SEPARATOR.join(parts)}"
        )
    return SEPARATOR.join(parts)


def parent_and_id(doc_path: str) -> Tuple[str, str]:
    """Return ``(collection_path, doc_id)`` for a document path."""
    parts = split_path(doc_path)
    if len(parts) % 2 != 0:
        raise InvalidPathError(f"Not a document path: {doc_path}")
    return SEPARATOR.join(parts[:-1]), parts[-1]


def validate_collection_path(path: str) -> str:
    parts = split_path(path)
    if len(parts) % 2 != 1:
        raise InvalidPathError(f"Not a collection path: {path}")
    return path

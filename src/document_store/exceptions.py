"""Document store exceptions.

The chat history and chat view layers catch these at their boundaries and
translate them into their own error types.
"""


class DocumentStoreError(Exception):
    """Base class for document store failures."""

    pass


class DocumentNotFoundError(DocumentStoreError):
    """An update targeted a document that does not exist."""

    def __init__(self, path: str):
        super().__init__(f"Document not found: {path}")
        self.path = path


class InvalidPathError(DocumentStoreError, ValueError):
    """A collection or document path is malformed."""

    pass


class StoreClosedError(DocumentStoreError):
    """The store has been closed."""

    pass

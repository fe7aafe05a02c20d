"""Chat history errors.

Store failures are wrapped so that callers can tell a failed append from a
half-applied one.
"""


class ChatHistoryError(Exception):
    """Base class for chat persistence failures."""

    pass


class SessionWriteError(ChatHistoryError):
    """Creating or deleting a session failed."""

    pass


class MessageAppendError(ChatHistoryError):
    """The message itself was not written."""

    pass


class SessionMetadataUpdateError(ChatHistoryError):
    """The message was written but the session metadata update failed.

    The session's title, last message text and updated timestamp are stale
    until ``MessageRepository.repair_session_metadata`` runs.
    """

    def __init__(self, message: str, *, session_id: str, message_id: str):
        super().__init__(message)
        self.session_id = session_id
        self.message_id = message_id


class MalformedDocumentError(ChatHistoryError):
    """A stored document does not match the expected schema."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Malformed document at {path}: {reason}")
        self.path = path
        self.reason = reason


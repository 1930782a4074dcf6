from typing import Optional


class Text2SQLError(Exception):
    """Base class for every failure raised by the chat demo."""


class ConfigurationError(Text2SQLError):
    """A required server-side setting (e.g. the API key) is missing."""


class NetworkError(Text2SQLError):
    """The HTTP transport failed before a response was received."""


class ApiError(Text2SQLError):
    """The proxy or upstream API answered with a non-success status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MessageNotFoundError(Text2SQLError):
    """No runnable message with the given id exists in the conversation."""

    def __init__(self, message_id: str):
        super().__init__(f"Message not found: {message_id}")
        self.message_id = message_id


class RunInProgressError(Text2SQLError):
    """A run is already in flight for this message."""

    def __init__(self, message_id: str):
        super().__init__(f"A query run is already in progress for message {message_id}")
        self.message_id = message_id

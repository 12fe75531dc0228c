class BotError(Exception):
    """Base bot error."""


class UpstreamError(BotError):
    """Raised when an upstream API is unavailable."""


class DispatchError(UpstreamError):
    """Raised when the analysis webhook rejects or fails a request."""


class ValidationError(BotError):
    """Raised for invalid user input."""


class SessionStoreError(BotError):
    """Raised when a session record cannot be read or written."""

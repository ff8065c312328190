"""Custom exceptions for chatgraph."""


class ChatGraphError(Exception):
    """Base exception for all chatgraph errors."""


class ConfigError(ChatGraphError):
    """Configuration-related errors."""


class NotFoundError(ChatGraphError):
    """A referenced conversation, message or link does not exist."""

    def __init__(self, kind: str, identifier: str, detail: str = ""):
        self.kind = kind
        self.identifier = identifier
        message = f"{kind.capitalize()} '{identifier}' not found"
        if detail:
            message = f"{message} {detail}"
        super().__init__(message)


class InvalidOperationError(ChatGraphError):
    """The requested graph operation would break an invariant."""


class StorageError(ChatGraphError):
    """Errors raised by a storage backend."""

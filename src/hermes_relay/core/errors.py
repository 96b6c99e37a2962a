"""Domain errors raised by the relay components.

Each error maps to one connection-level outcome:

- ``AuthenticationError`` refuses the WebSocket handshake.
- ``IdentityNotFoundError`` closes the connection right after the handshake.
- Everything else is reported to the acting connection only and the
  connection stays open.
"""

from __future__ import annotations


class RelayError(RuntimeError):
    """Base class for all relay failures."""

    #: Message sent to the client in an ``error`` event.
    public_message = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.public_message)


class AuthenticationError(RelayError):
    """Raised when a token is missing, malformed, unsigned, or expired."""

    public_message = "Authentication error"


class IdentityNotFoundError(RelayError):
    """Raised when a valid token refers to an account that does not exist."""

    public_message = "User not found"


class AccessDeniedError(RelayError):
    """Raised when the caller holds no open membership for the chat."""

    public_message = "Access denied to this chat"


class PersistenceError(RelayError):
    """Raised when the persistence layer fails transiently."""

    public_message = "Persistence failure"


class ConflictError(RelayError):
    """Raised when a wrapped key version is registered twice."""

    public_message = "Key version already registered"


class InvalidEventError(RelayError):
    """Raised when an inbound payload fails validation."""

    public_message = "Invalid event payload"

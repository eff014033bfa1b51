"""Client error types for Iceload key-value service interactions."""

from __future__ import annotations

from typing import Any


class IceloadClientError(Exception):
    """Base error for Iceload client failures."""


class IceloadTimeout(IceloadClientError):
    """Timeout while communicating with the service."""


class IceloadConnectionError(IceloadClientError):
    """Network connection to the service failed or was lost."""


class IceloadHandshakeError(IceloadClientError):
    """WebSocket handshake failed."""


class IceloadRemoteError(IceloadClientError):
    """The service answered a request with an Error frame."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class IceloadProtocolError(IceloadClientError):
    """An inbound frame could not be classified or routed."""

    def __init__(self, reason: str, frame: Any = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.frame = frame


class IceloadUsageError(IceloadClientError):
    """The client API was used incorrectly."""


class IceloadNotReadyError(IceloadUsageError):
    """A command was issued while the connection is not ready."""


class IceloadNotSubscribedError(IceloadUsageError):
    """Unsubscribe for a key or callback that is not registered."""

    def __init__(self, key: str, message: str | None = None) -> None:
        super().__init__(message or f"Not subscribed to {key!r}")
        self.key = key

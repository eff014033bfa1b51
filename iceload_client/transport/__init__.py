"""Transport layer for the Iceload client.

This package contains the WebSocket IO and connection lifecycle.

Components:
- ws: WebSocket connection establishment
- ws_client: connection state, readiness gating and message iteration
"""

from .ws import connect_websocket
from .ws_client import (
    ConnectionState,
    IceloadWsClient,
    IceloadWsMessage,
    IceloadWsMessageType,
)

__all__ = [
    "ConnectionState",
    "IceloadWsClient",
    "IceloadWsMessage",
    "IceloadWsMessageType",
    "connect_websocket",
]

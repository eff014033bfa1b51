"""WebSocket client wrapper managing one Iceload connection."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from websockets.asyncio.client import ClientConnection
from websockets.exceptions import ConnectionClosed

from ..errors import IceloadClientError, IceloadConnectionError, IceloadNotReadyError
from .ws import connect_websocket

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

_LOGGER = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Readiness of the underlying transport."""

    CONNECTING = "connecting"
    READY = "ready"
    CLOSED = "closed"


class IceloadWsMessageType(Enum):
    """Normalized WebSocket message types."""

    TEXT = "text"
    CLOSED = "closed"
    ERROR = "error"


@dataclass(frozen=True)
class IceloadWsMessage:
    """Normalized WebSocket message payload."""

    type: IceloadWsMessageType
    data: str | None = None


class IceloadWsClient:
    """Wrapper around the websockets library for one Iceload connection."""

    def __init__(self) -> None:
        self._ws: ClientConnection | None = None
        self._state = ConnectionState.CLOSED

    @property
    def state(self) -> ConnectionState:
        """Get current connection state."""
        return self._state

    @property
    def is_ready(self) -> bool:
        """Check if frames can be sent."""
        return self._state is ConnectionState.READY

    async def connect(
        self,
        url: str,
        *,
        ping_interval: int | None = 20,
        timeout: float = 15.0,
    ) -> None:
        """Connect to the service websocket and wait for it to open."""
        self._state = ConnectionState.CONNECTING
        try:
            self._ws = await connect_websocket(
                url,
                ping_interval=ping_interval,
                timeout=timeout,
            )
        except IceloadClientError:
            self._state = ConnectionState.CLOSED
            raise
        self._state = ConnectionState.READY

    async def close(self) -> None:
        """Close the websocket connection."""
        self._state = ConnectionState.CLOSED
        if self._ws is not None:
            await self._ws.close()

    async def send_json(self, payload: dict[str, Any]) -> None:
        """Send a JSON payload to the websocket.

        Raises:
            IceloadNotReadyError: If the connection has not opened or is closed
            IceloadConnectionError: If the transport fails mid-send
        """
        if self._ws is None or not self.is_ready:
            raise IceloadNotReadyError("WebSocket is not ready")
        frame = json.dumps(payload)
        _LOGGER.debug("Sending frame: %s", frame)
        try:
            await self._ws.send(frame)
        except ConnectionClosed as err:
            self._state = ConnectionState.CLOSED
            raise IceloadConnectionError("WebSocket closed while sending") from err

    def __aiter__(self) -> AsyncIterator[IceloadWsMessage]:
        if self._ws is None:
            raise IceloadConnectionError("WebSocket is not connected")
        return self._iter_messages()

    async def _iter_messages(self) -> AsyncIterator[IceloadWsMessage]:
        if self._ws is None:
            raise IceloadConnectionError("WebSocket is not connected")

        try:
            async for msg in self._ws:
                if not isinstance(msg, str):
                    _LOGGER.debug("Skipping binary frame (%d bytes)", len(msg))
                    continue
                yield IceloadWsMessage(IceloadWsMessageType.TEXT, msg)
        except ConnectionClosed:
            self._state = ConnectionState.CLOSED
            yield IceloadWsMessage(type=IceloadWsMessageType.CLOSED)
        except Exception:
            _LOGGER.exception("WebSocket receive failed")
            self._state = ConnectionState.CLOSED
            yield IceloadWsMessage(type=IceloadWsMessageType.ERROR)
        else:
            # Normal iteration completion means the peer closed gracefully.
            self._state = ConnectionState.CLOSED
            yield IceloadWsMessage(type=IceloadWsMessageType.CLOSED)


"""Opening the Iceload WebSocket and mapping its failures to client errors."""

from __future__ import annotations

import asyncio

import websockets
from websockets.asyncio.client import ClientConnection
from websockets.exceptions import (
    InvalidHandshake,
    InvalidURI,
    WebSocketException,
)

from ..errors import (
    IceloadConnectionError,
    IceloadHandshakeError,
    IceloadTimeout,
)


async def connect_websocket(
    url: str,
    *,
    ping_interval: int | None = 20,
    timeout: float = 15.0,
) -> ClientConnection:
    """Open the socket to an Iceload service and wait for the handshake.

    Inbound frames have no size cap since stored values can be arbitrary
    JSON documents. Failures from the websockets library come back as
    ``IceloadClientError`` subclasses.

    Args:
        url: Service address, ``ws://`` or ``wss://``
        ping_interval: Seconds between keepalive pings; None turns them off
        timeout: Seconds allowed for the whole opening handshake

    Raises:
        IceloadTimeout: The handshake did not finish within ``timeout``
        IceloadHandshakeError: The address is invalid or the upgrade was refused
        IceloadConnectionError: The service could not be reached
    """
    try:
        return await asyncio.wait_for(
            websockets.connect(
                url,
                ping_interval=ping_interval,
                close_timeout=5,
                max_size=None,
            ),
            timeout=timeout,
        )
    except TimeoutError as err:
        raise IceloadTimeout("WebSocket connection timed out") from err
    except (InvalidHandshake, InvalidURI) as err:
        raise IceloadHandshakeError("WebSocket handshake failed") from err
    except (OSError, WebSocketException) as err:
        raise IceloadConnectionError("WebSocket connection failed") from err

"""High-level client for the Iceload key-value service.

One ``IceloadClient`` shares a single WebSocket connection between:
- request/response operations (get, set, delete)
- live subscriptions to key changes (subscribe, unsubscribe)

Inbound frames are read by one listener task and handed to the
demultiplexer in arrival order. Conditions with no single caller to blame
(lost connection, unroutable frames) are reported through ``on_error``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from .demux import Demultiplexer, ErrorCallback
from .errors import IceloadClientError, IceloadConnectionError
from .registry import SubscriptionCallback
from .transport.ws_client import ConnectionState, IceloadWsClient, IceloadWsMessageType

_LOGGER = logging.getLogger(__name__)


class IceloadClient:
    """Client for one Iceload service connection.

    Usage:
        client = await iceload_client.connect("ws://127.0.0.1:9002")
        await client.set("hello", "world")
        value = await client.get("hello")
        await client.subscribe("hello", my_callback)
        await client.unsubscribe("hello", my_callback)
        await client.close()
    """

    def __init__(
        self,
        url: str,
        *,
        ping_interval: int | None = 20,
        connect_timeout: float = 15.0,
        request_timeout: float | None = None,
    ):
        """Initialize client.

        Args:
            url: Service WebSocket URL (ws:// or wss://)
            ping_interval: Keepalive ping interval (seconds), None to disable
            connect_timeout: Handshake timeout (seconds)
            request_timeout: Reply timeout for get/set (seconds), None waits forever
        """
        self.url = url

        self._ping_interval = ping_interval
        self._connect_timeout = connect_timeout

        # Connection state
        self._ws: IceloadWsClient | None = None
        self._state = ConnectionState.CLOSED
        self._listen_task: asyncio.Task[None] | None = None
        self._closing = False

        # Callbacks
        self._error_callback: ErrorCallback | None = None
        self._connection_state_callback: Callable[[ConnectionState], None] | None = (
            None
        )

        self._demux = Demultiplexer(
            self._send,
            request_timeout=request_timeout,
            on_error=self._report_error,
        )

    # -------------------------------------------------------------------------
    # Public API: Connection Management
    # -------------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the connection and restore any existing subscriptions.

        Raises:
            IceloadTimeout: If the handshake does not finish in time
            IceloadHandshakeError: If the server rejects the handshake
            IceloadConnectionError: If the server cannot be reached
        """
        if self._ws is not None and self._ws.is_ready:
            _LOGGER.debug("[%s] Already connected", self.url)
            return

        await self._stop_listener()
        self._closing = False
        self._set_state(ConnectionState.CONNECTING)
        _LOGGER.info("[%s] Connecting", self.url)

        ws_client = IceloadWsClient()
        try:
            await ws_client.connect(
                self.url,
                ping_interval=self._ping_interval,
                timeout=self._connect_timeout,
            )
        except IceloadClientError as err:
            _LOGGER.warning("[%s] Connection failed: %s", self.url, err)
            self._set_state(ConnectionState.CLOSED)
            raise
        self._ws = ws_client

        _LOGGER.info("[%s] WebSocket connected, starting listener", self.url)
        self._listen_task = asyncio.create_task(self._listen(ws_client))
        try:
            await self._demux.connection_made()
        except BaseException as err:
            _LOGGER.warning("[%s] Restoring subscriptions failed: %s", self.url, err)
            self._closing = True
            await self._stop_listener()
            await ws_client.close()
            self._demux.connection_lost(
                IceloadConnectionError("Restoring subscriptions failed")
            )
            self._set_state(ConnectionState.CLOSED)
            raise
        self._set_state(ConnectionState.READY)

    async def close(self) -> None:
        """Close the connection and fail outstanding requests."""
        _LOGGER.info("[%s] Closing client", self.url)
        self._closing = True

        await self._stop_listener()

        if self._ws is not None:
            try:
                await asyncio.wait_for(self._ws.close(), timeout=2.0)
            except TimeoutError:
                _LOGGER.warning("[%s] WebSocket close timed out", self.url)
            self._ws = None

        self._demux.connection_lost(IceloadConnectionError("Client closed"))
        self._set_state(ConnectionState.CLOSED)

    @property
    def state(self) -> ConnectionState:
        """Get current connection state."""
        return self._state

    @property
    def is_ready(self) -> bool:
        """Check if the client can issue commands."""
        return self._state is ConnectionState.READY

    # -------------------------------------------------------------------------
    # Public API: Callbacks
    # -------------------------------------------------------------------------

    def on_error(self, callback: ErrorCallback) -> None:
        """Register callback for connection-wide errors.

        Callback receives IceloadConnectionError when the transport is lost
        and IceloadProtocolError for frames that cannot be routed.
        """
        self._error_callback = callback

    def on_connection_state_changed(
        self, callback: Callable[[ConnectionState], None]
    ) -> None:
        """Register callback for connection state changes."""
        self._connection_state_callback = callback

    # -------------------------------------------------------------------------
    # Public API: Key-value operations
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> Any:
        """Fetch the value stored under key.

        Raises:
            IceloadRemoteError: If the service answers with an Error frame
            IceloadNotReadyError: If the connection is not ready
        """
        return await self._demux.get(key)

    async def set(self, key: str, value: Any) -> Any:
        """Store value under key.

        Returns:
            The service's reply payload (the previous value)
        """
        return await self._demux.set(key, value)

    async def delete(self, key: str) -> Any:
        """Remove key from the store."""
        return await self._demux.delete(key)

    async def subscribe(self, key: str, callback: SubscriptionCallback) -> None:
        """Invoke callback with every pushed value for key."""
        await self._demux.subscribe(key, callback)

    async def unsubscribe(self, key: str, callback: SubscriptionCallback) -> None:
        """Stop invoking callback for key.

        Raises:
            IceloadNotSubscribedError: If callback is not subscribed to key
        """
        await self._demux.unsubscribe(key, callback)

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    async def _send(self, payload: dict[str, Any]) -> None:
        if self._ws is None:
            raise IceloadConnectionError("WebSocket is not connected")
        await self._ws.send_json(payload)

    def _set_state(self, state: ConnectionState) -> None:
        """Update connection state and notify callback."""
        if self._state is state:
            return
        _LOGGER.debug("[%s] State: %s → %s", self.url, self._state.value, state.value)
        self._state = state
        if self._connection_state_callback:
            try:
                self._connection_state_callback(state)
            except Exception as err:
                _LOGGER.exception(
                    "[%s] Connection state callback error: %s", self.url, err
                )

    def _report_error(self, err: IceloadClientError) -> None:
        if self._error_callback:
            try:
                self._error_callback(err)
            except Exception as cb_err:
                _LOGGER.exception("[%s] Error callback failed: %s", self.url, cb_err)

    async def _stop_listener(self) -> None:
        if self._listen_task is None:
            return
        if self._listen_task is not asyncio.current_task():
            self._listen_task.cancel()
            try:
                await self._listen_task
            except asyncio.CancelledError:
                pass
        self._listen_task = None

    async def _listen(self, ws_client: IceloadWsClient) -> None:
        """Forward inbound frames to the demultiplexer until the socket ends."""
        message_count = 0
        lost: IceloadConnectionError | None = None

        try:
            async for msg in ws_client:
                if msg.type is IceloadWsMessageType.TEXT:
                    message_count += 1
                    _LOGGER.debug("[%s] Received frame: %s", self.url, msg.data)
                    self._demux.dispatch(msg.data)
                elif msg.type is IceloadWsMessageType.CLOSED:
                    _LOGGER.info("[%s] WebSocket closed by service", self.url)
                    lost = IceloadConnectionError("WebSocket closed by service")
                    break
                elif msg.type is IceloadWsMessageType.ERROR:
                    _LOGGER.error("[%s] WebSocket error", self.url)
                    lost = IceloadConnectionError("WebSocket receive failed")
                    break

        except asyncio.CancelledError:
            _LOGGER.debug(
                "[%s] Listener cancelled (%d messages)", self.url, message_count
            )
            raise
        except Exception as err:
            _LOGGER.exception("[%s] Unexpected listener error: %s", self.url, err)
            lost = IceloadConnectionError(f"Listener failed: {err}")
            await ws_client.close()

        if lost is not None and not self._closing:
            self._handle_connection_lost(lost)

    def _handle_connection_lost(self, err: IceloadConnectionError) -> None:
        _LOGGER.warning("[%s] Connection lost: %s", self.url, err)
        self._listen_task = None
        self._set_state(ConnectionState.CLOSED)
        self._demux.connection_lost(err)
        self._report_error(err)


async def connect(
    url: str,
    *,
    ping_interval: int | None = 20,
    connect_timeout: float = 15.0,
    request_timeout: float | None = None,
) -> IceloadClient:
    """Create a client and wait until its connection is ready."""
    client = IceloadClient(
        url,
        ping_interval=ping_interval,
        connect_timeout=connect_timeout,
        request_timeout=request_timeout,
    )
    await client.connect()
    return client

"""Demultiplexer for one Iceload connection.

Owns all in-flight protocol state of a single connection:

- the correlation table linking request ids to the callers awaiting them
- the subscription registry fanning push updates out to callbacks

Outbound frames go through an injected ``send`` coroutine function; inbound
frames arrive through ``dispatch``, one at a time and in arrival order.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from .errors import (
    IceloadClientError,
    IceloadConnectionError,
    IceloadNotReadyError,
    IceloadProtocolError,
    IceloadRemoteError,
    IceloadTimeout,
)
from .protocol import (
    Command,
    Error,
    Get,
    Set,
    Subscribe,
    SubscriptionUpdate,
    Unsubscribe,
    Value,
    decode_reply,
    encode_command,
)
from .registry import SubscriptionCallback, SubscriptionRegistry

_LOGGER = logging.getLogger(__name__)

SendFunc = Callable[[dict[str, Any]], Awaitable[None]]
ErrorCallback = Callable[[IceloadClientError], None]


class Demultiplexer:
    """Correlate replies with requests and fan out subscription updates."""

    def __init__(
        self,
        send: SendFunc,
        *,
        request_timeout: float | None = None,
        on_error: ErrorCallback | None = None,
    ) -> None:
        """Initialize demultiplexer.

        Args:
            send: Coroutine function writing one frame to the transport
            request_timeout: Seconds to wait for a reply, None waits forever
            on_error: Receives protocol anomalies that have no caller to blame
        """
        self._send = send
        self._request_timeout = request_timeout
        self._on_error = on_error

        self._online = False
        self._request_ids = itertools.count(1)
        # Insertion order tracks the oldest outstanding request
        self._pending: dict[int, asyncio.Future[Any]] = {}
        self.registry = SubscriptionRegistry()

    @property
    def online(self) -> bool:
        """Check if the connection is usable for commands."""
        return self._online

    @property
    def pending_count(self) -> int:
        """Number of requests awaiting a reply."""
        return len(self._pending)

    # -------------------------------------------------------------------------
    # Connection events
    # -------------------------------------------------------------------------

    async def connection_made(self) -> None:
        """Mark the connection usable and restore server-side subscriptions."""
        self._online = True
        for key in self.registry:
            _LOGGER.debug("Re-subscribing to %s", key)
            await self._send(encode_command(Subscribe(key)))

    def connection_lost(self, exc: IceloadConnectionError) -> None:
        """Reject every outstanding request with exc.

        Registry entries survive and are re-subscribed by the next
        ``connection_made``.
        """
        self._online = False
        pending = list(self._pending.values())
        self._pending.clear()
        for future in pending:
            if not future.done():
                future.set_exception(exc)
        if pending:
            _LOGGER.debug("Rejected %d pending request(s): %s", len(pending), exc)

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> Any:
        """Fetch the value stored under key."""
        return await self._request(Get(key))

    async def set(self, key: str, value: Any) -> Any:
        """Store value under key and return the service's reply payload."""
        return await self._request(Set(key, value))

    async def delete(self, key: str) -> Any:
        """Remove key from the store."""
        return await self._request(Set(key, None))

    async def _request(self, command: Command) -> Any:
        if not self._online:
            raise IceloadNotReadyError("Connection is not ready")

        request_id = next(self._request_ids)
        frame = encode_command(command, request_id=request_id)
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        try:
            await self._send(frame)
            if self._request_timeout is None:
                return await future
            try:
                return await asyncio.wait_for(future, self._request_timeout)
            except TimeoutError as err:
                raise IceloadTimeout(
                    f"No reply to request {request_id} within "
                    f"{self._request_timeout}s"
                ) from err
        finally:
            self._pending.pop(request_id, None)

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    async def subscribe(self, key: str, callback: SubscriptionCallback) -> None:
        """Register callback for push updates on key.

        Only the first callback for a key sends a Subscribe command. A failed
        send rolls back this callback alone; callbacks that joined meanwhile
        stay registered and are re-subscribed by the next ``connection_made``.
        """
        if not self.registry.add(key, callback):
            return
        if not self._online:
            self.registry.remove(key, callback)
            raise IceloadNotReadyError("Connection is not ready")
        try:
            await self._send(encode_command(Subscribe(key)))
        except BaseException:
            if callback in self.registry.callbacks(key):
                self.registry.remove(key, callback)
            raise
        _LOGGER.debug("Subscribed to %s", key)

    async def unsubscribe(self, key: str, callback: SubscriptionCallback) -> None:
        """Unregister callback for key.

        Only removing the last callback for a key sends an Unsubscribe
        command, and only while online.
        """
        if not self.registry.remove(key, callback):
            return
        if not self._online:
            _LOGGER.debug("Dropped subscription to %s while offline", key)
            return
        await self._send(encode_command(Unsubscribe(key)))
        _LOGGER.debug("Unsubscribed from %s", key)

    # -------------------------------------------------------------------------
    # Inbound
    # -------------------------------------------------------------------------

    def dispatch(self, raw: str | dict[str, Any]) -> None:
        """Decode one inbound frame and route it."""
        try:
            reply = decode_reply(raw)
        except IceloadProtocolError as err:
            self._report_anomaly(err)
            return

        match reply:
            case SubscriptionUpdate(key=key, value=value):
                self._fan_out(key, value)
            case Value(payload=payload, request_id=request_id):
                future = self._take_pending(request_id, raw)
                if future is not None:
                    future.set_result(payload)
            case Error(message=message, request_id=request_id):
                future = self._take_pending(request_id, raw)
                if future is not None:
                    future.set_exception(IceloadRemoteError(message))

    def _take_pending(
        self, request_id: int | None, raw: str | dict[str, Any]
    ) -> asyncio.Future[Any] | None:
        """Pop the waiter a reply belongs to, reporting unroutable replies."""
        if request_id is None:
            # Replies without an id answer requests in the order they were sent
            request_id = next(iter(self._pending), None)
        future = self._pending.pop(request_id, None) if request_id is not None else None
        if future is None or future.done():
            self._report_anomaly(
                IceloadProtocolError("Reply does not match a pending request", raw)
            )
            return None
        return future

    def _fan_out(self, key: str, value: Any) -> None:
        callbacks = self.registry.callbacks(key)
        if not callbacks:
            _LOGGER.debug("Dropping update for %s: no subscribers", key)
            return
        for callback in callbacks:
            try:
                callback(value)
            except Exception as err:
                _LOGGER.exception("Subscription callback error for %s: %s", key, err)

    def _report_anomaly(self, err: IceloadProtocolError) -> None:
        _LOGGER.warning("Protocol anomaly: %s (frame=%r)", err.reason, err.frame)
        if self._on_error is None:
            return
        try:
            self._on_error(err)
        except Exception as cb_err:
            _LOGGER.exception("Error callback failed: %s", cb_err)

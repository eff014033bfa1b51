"""Pytest configuration and fixtures for iceload_client tests."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest

from iceload_client import IceloadClient, connect

TEST_URL = "ws://iceload.test:9002"

_END = object()


class FakeConnection:
    """Stand-in for a websockets ClientConnection.

    Frames sent by the client are recorded in ``sent``; frames queued with
    ``push`` are yielded to the client's listener in order.
    """

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.send = AsyncMock(side_effect=self._record)
        self.close = AsyncMock(side_effect=self._close)
        self._inbound: asyncio.Queue[Any] = asyncio.Queue()

    async def _record(self, frame: str) -> None:
        self.sent.append(frame)

    async def _close(self) -> None:
        self._inbound.put_nowait(_END)

    @property
    def frames(self) -> list[dict[str, Any]]:
        """Sent frames decoded from JSON."""
        return [json.loads(frame) for frame in self.sent]

    def push(self, frame: Any) -> None:
        """Queue an inbound frame; non-strings are JSON encoded."""
        self._inbound.put_nowait(frame if isinstance(frame, str) else json.dumps(frame))

    def push_raw(self, item: Any) -> None:
        """Queue an inbound item as-is (bytes, exceptions)."""
        self._inbound.put_nowait(item)

    def end(self) -> None:
        """Finish the inbound stream as a graceful close."""
        self._inbound.put_nowait(_END)

    def __aiter__(self) -> FakeConnection:
        return self

    async def __anext__(self) -> Any:
        item = await self._inbound.get()
        if item is _END:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item


class FakeIceloadService(FakeConnection):
    """FakeConnection that answers commands like the Iceload service.

    Set replies with the previous value, Get of a missing key replies with
    an Error frame, and every Set pushes a SubscriptionUpdate to keys with
    an active subscription.
    """

    def __init__(self, *, echo_ids: bool = True) -> None:
        super().__init__()
        self.echo_ids = echo_ids
        self.store: dict[str, Any] = {}
        self.subscriptions: set[str] = set()

    async def _record(self, frame: str) -> None:
        await super()._record(frame)
        command = json.loads(frame)
        request_id = command.pop("id", None)
        ((tag, body),) = command.items()

        if tag == "Get":
            if body in self.store:
                self._reply({"Value": self.store[body]}, request_id)
            else:
                self._reply({"Error": "not found"}, request_id)
        elif tag == "Set":
            key, value = body
            previous = self.store.get(key)
            if value is None:
                self.store.pop(key, None)
            else:
                self.store[key] = value
            self._reply({"Value": previous}, request_id)
            if key in self.subscriptions:
                self.push({"SubscriptionUpdate": [key, value]})
        elif tag == "Subscribe":
            self.subscriptions.add(body)
        elif tag == "Unsubscribe":
            self.subscriptions.discard(body)

    def _reply(self, frame: dict[str, Any], request_id: int | None) -> None:
        if self.echo_ids and request_id is not None:
            frame["id"] = request_id
        self.push(frame)


async def settle(rounds: int = 5) -> None:
    """Let scheduled tasks run until they block."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def fake_ws() -> FakeConnection:
    """Create a fake websocket connection."""
    return FakeConnection()


@pytest.fixture
def fake_service() -> FakeIceloadService:
    """Create a fake websocket connection backed by an in-memory store."""
    return FakeIceloadService()


@pytest.fixture
def open_client() -> Callable[..., Awaitable[IceloadClient]]:
    """Return a coroutine function connecting a client to a fake connection."""

    async def _open(conn: FakeConnection, **kwargs: Any) -> IceloadClient:
        with patch(
            "iceload_client.transport.ws_client.connect_websocket",
            AsyncMock(return_value=conn),
        ):
            return await connect(TEST_URL, **kwargs)

    return _open

"""Wire schema for Iceload command and reply frames.

Every frame is one JSON object whose single tag key names the variant.
Request commands and their replies may also carry an integer ``id`` used to
correlate a reply with the request it answers.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from .errors import IceloadProtocolError

ID_FIELD = "id"

TAG_GET = "Get"
TAG_SET = "Set"
TAG_SUBSCRIBE = "Subscribe"
TAG_UNSUBSCRIBE = "Unsubscribe"

TAG_VALUE = "Value"
TAG_ERROR = "Error"
TAG_SUBSCRIPTION_UPDATE = "SubscriptionUpdate"


# Outbound commands


@dataclass(frozen=True, slots=True)
class Get:
    """Fetch the value stored under key."""

    key: str


@dataclass(frozen=True, slots=True)
class Set:
    """Store value under key; a None value removes the key."""

    key: str
    value: Any = None


@dataclass(frozen=True, slots=True)
class Subscribe:
    """Begin receiving push updates for key."""

    key: str


@dataclass(frozen=True, slots=True)
class Unsubscribe:
    """Stop receiving push updates for key."""

    key: str


Command = Get | Set | Subscribe | Unsubscribe


# Inbound replies


@dataclass(frozen=True, slots=True)
class Value:
    """Success reply to a pending request."""

    payload: Any
    request_id: int | None = None


@dataclass(frozen=True, slots=True)
class Error:
    """Failure reply to a pending request."""

    message: str
    request_id: int | None = None


@dataclass(frozen=True, slots=True)
class SubscriptionUpdate:
    """Push notification for a subscribed key."""

    key: str
    value: Any


Reply = Value | Error | SubscriptionUpdate


def _check_key(key: Any) -> str:
    if not isinstance(key, str):
        raise TypeError(f"Key must be a string, got {type(key).__name__}")
    return key


def encode_command(command: Command, *, request_id: int | None = None) -> dict[str, Any]:
    """Build the JSON object for an outbound command.

    Args:
        command: Command variant to encode.
        request_id: Correlation id, only meaningful for Get and Set.

    Returns:
        Frame dict ready for json serialization.
    """
    frame: dict[str, Any]
    match command:
        case Get(key=key):
            frame = {TAG_GET: _check_key(key)}
        case Set(key=key, value=value):
            frame = {TAG_SET: [_check_key(key), value]}
        case Subscribe(key=key):
            return {TAG_SUBSCRIBE: _check_key(key)}
        case Unsubscribe(key=key):
            return {TAG_UNSUBSCRIBE: _check_key(key)}
        case _:
            raise TypeError(f"Unknown command: {command!r}")

    if request_id is not None:
        frame[ID_FIELD] = request_id
    return frame


def _parse_request_id(frame: dict[str, Any], raw: Any) -> int | None:
    request_id = frame.get(ID_FIELD)
    if request_id is None:
        return None
    # bool is an int subclass but never a valid id
    if isinstance(request_id, bool) or not isinstance(request_id, int):
        raise IceloadProtocolError(f"Invalid correlation id: {request_id!r}", raw)
    return request_id


def decode_reply(raw: str | dict[str, Any]) -> Reply:
    """Parse one inbound frame into a Reply variant.

    Raises:
        IceloadProtocolError: If the frame cannot be classified.
    """
    if isinstance(raw, str):
        try:
            frame = json.loads(raw)
        except (ValueError, RecursionError) as err:
            raise IceloadProtocolError(f"Frame is not valid JSON: {err}", raw) from err
    else:
        frame = raw

    if not isinstance(frame, dict):
        raise IceloadProtocolError("Frame is not a JSON object", raw)

    tags = [name for name in frame if name != ID_FIELD]
    if len(tags) != 1:
        raise IceloadProtocolError(
            f"Frame must carry exactly one tag, got {sorted(tags)}", raw
        )
    tag = tags[0]
    body = frame[tag]

    if tag == TAG_VALUE:
        return Value(body, _parse_request_id(frame, raw))

    if tag == TAG_ERROR:
        if body is None:
            raise IceloadProtocolError("Error frame without a message", raw)
        message = body if isinstance(body, str) else json.dumps(body)
        return Error(message, _parse_request_id(frame, raw))

    if tag == TAG_SUBSCRIPTION_UPDATE:
        if ID_FIELD in frame:
            raise IceloadProtocolError("Push frames are not correlated", raw)
        if not isinstance(body, list) or len(body) != 2:
            raise IceloadProtocolError("SubscriptionUpdate must be [key, value]", raw)
        key, value = body
        if not isinstance(key, str):
            raise IceloadProtocolError("SubscriptionUpdate key is not a string", raw)
        return SubscriptionUpdate(key, value)

    raise IceloadProtocolError(f"Unknown frame tag: {tag}", raw)

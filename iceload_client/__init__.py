"""Client for the Iceload key-value service."""

__version__ = "0.1.0"

from .client import IceloadClient, connect
from .demux import Demultiplexer
from .errors import (
    IceloadClientError,
    IceloadConnectionError,
    IceloadHandshakeError,
    IceloadNotReadyError,
    IceloadNotSubscribedError,
    IceloadProtocolError,
    IceloadRemoteError,
    IceloadTimeout,
    IceloadUsageError,
)
from .protocol import decode_reply, encode_command
from .registry import SubscriptionRegistry
from .transport import ConnectionState

__all__ = [
    "ConnectionState",
    "Demultiplexer",
    "IceloadClient",
    "IceloadClientError",
    "IceloadConnectionError",
    "IceloadHandshakeError",
    "IceloadNotReadyError",
    "IceloadNotSubscribedError",
    "IceloadProtocolError",
    "IceloadRemoteError",
    "IceloadTimeout",
    "IceloadUsageError",
    "SubscriptionRegistry",
    "__version__",
    "connect",
    "decode_reply",
    "encode_command",
]

"""Reference-counted registry of subscription callbacks."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import Any

from .errors import IceloadNotSubscribedError

SubscriptionCallback = Callable[[Any], None]


class SubscriptionRegistry:
    """Map each key to the ordered set of callbacks listening to it.

    A key is present only while it has at least one callback. ``add`` and
    ``remove`` report the 0 -> 1 and 1 -> 0 transitions so the caller knows
    when a wire-level subscribe or unsubscribe is due.
    """

    def __init__(self) -> None:
        # dict keys double as an insertion-ordered set
        self._listeners: dict[str, dict[SubscriptionCallback, None]] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._listeners

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._listeners))

    def __len__(self) -> int:
        return len(self._listeners)

    def add(self, key: str, callback: SubscriptionCallback) -> bool:
        """Register callback for key.

        Returns:
            True if key had no callbacks before this call.
        """
        listeners = self._listeners.get(key)
        if listeners is None:
            self._listeners[key] = {callback: None}
            return True
        listeners.setdefault(callback, None)
        return False

    def remove(self, key: str, callback: SubscriptionCallback) -> bool:
        """Unregister callback for key.

        Returns:
            True if key has no callbacks left and was dropped.

        Raises:
            IceloadNotSubscribedError: If key or callback is not registered.
        """
        listeners = self._listeners.get(key)
        if listeners is None:
            raise IceloadNotSubscribedError(key)
        if callback not in listeners:
            raise IceloadNotSubscribedError(
                key, f"Callback {callback!r} is not subscribed to {key!r}"
            )
        del listeners[callback]
        if listeners:
            return False
        del self._listeners[key]
        return True

    def callbacks(self, key: str) -> tuple[SubscriptionCallback, ...]:
        """Snapshot of the callbacks for key, in registration order."""
        return tuple(self._listeners.get(key, ()))

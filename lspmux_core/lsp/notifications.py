"""Dispatch of server-to-client notifications by method name."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

Listener = Callable[[Any], None]


class NotificationRouter:
    """Maps method names to ordered listener lists.

    Listeners are called synchronously, in registration order, with the
    message params. Methods without listeners are discarded.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}

    def on(self, method: str, listener: Listener) -> Callable[[], None]:
        """Register a listener for ``method``.

        Returns:
            A callable that unregisters the listener
        """
        self._listeners.setdefault(method, []).append(listener)

        def unsubscribe() -> None:
            self.off(method, listener)

        return unsubscribe

    def off(self, method: str, listener: Listener) -> None:
        """Remove a listener; unknown listeners are ignored."""
        listeners = self._listeners.get(method)
        if not listeners or listener not in listeners:
            return
        listeners.remove(listener)
        if not listeners:
            del self._listeners[method]

    def has_listeners(self, method: str) -> bool:
        return bool(self._listeners.get(method))

    def dispatch(self, method: str, params: Any) -> int:
        """Invoke the listeners for ``method``.

        A failing listener is logged and does not stop the others.

        Returns:
            Number of listeners invoked
        """
        listeners = list(self._listeners.get(method, ()))
        for listener in listeners:
            try:
                listener(params)
            except Exception as e:
                logger.warning("Listener for %s failed: %s", method, e)
        return len(listeners)

    def clear(self) -> None:
        self._listeners.clear()

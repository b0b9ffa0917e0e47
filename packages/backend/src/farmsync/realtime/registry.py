"""Subscription registry — event name → ordered set of callbacks.

Learn: Callbacks for one event are kept in a dict used as an ordered set,
so delivery follows registration order and registering the same callback
twice is a single registration. When the last callback for an event goes
away the event key is dropped too, so dead event names never pile up.
"""

from typing import Any, Callable

import structlog

logger = structlog.get_logger()

EventCallback = Callable[[Any], None]


class SubscriptionRegistry:
    def __init__(self):
        self._listeners: dict[str, dict[EventCallback, None]] = {}

    def add(self, event: str, callback: EventCallback) -> Callable[[], None]:
        """Register callback for event and return its unsubscribe function."""
        self._listeners.setdefault(event, {})[callback] = None

        def unsubscribe() -> None:
            listeners = self._listeners.get(event)
            if listeners is None or callback not in listeners:
                return
            del listeners[callback]
            if not listeners:
                del self._listeners[event]

        return unsubscribe

    def notify(self, event: str, payload: Any) -> int:
        """Call every callback for event in registration order.

        A callback that raises is logged and skipped; the rest still run.
        Returns the number of callbacks invoked.
        """
        listeners = self._listeners.get(event)
        if not listeners:
            return 0
        # Copy: a callback may unsubscribe itself (or others) mid-dispatch
        callbacks = list(listeners)
        for callback in callbacks:
            try:
                callback(payload)
            except Exception:
                logger.exception("realtime.listener_failed", event_name=event)
        return len(callbacks)

    def events(self) -> list[str]:
        return list(self._listeners)

    def count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def clear(self) -> None:
        self._listeners.clear()

    def __len__(self) -> int:
        return sum(len(listeners) for listeners in self._listeners.values())

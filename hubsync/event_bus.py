"""
hubsync/event_bus.py -- Change-event fan-out keyed by event name.

Consumers register handlers for ``"<kind>:create"``, ``"<kind>:update"``,
``"<kind>:delete"`` or ``"connection"`` and get back a
:class:`Subscription` handle.  Handlers run in registration order.  A
handler that raises is logged and skipped; later handlers still run.

Each synchronizer owns its own bus; there is no process-wide instance.

Usage::

    from hubsync.event_bus import EventBus

    bus = EventBus()
    sub = bus.subscribe("videos:create", on_new_video)
    bus.publish("videos:create", video)
    sub.unsubscribe()
"""

from __future__ import annotations

import itertools
import logging
import threading
from typing import Any, Callable

from hubsync.models.base import EntityKind

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]

CONNECTION_EVENT = "connection"
CHANGE_OPS = ("create", "update", "delete")


def event_name(kind: EntityKind | str, op: str) -> str:
    """``event_name("videos", "create") -> "videos:create"``."""
    return f"{EntityKind.parse(kind).value}:{op}"


def _valid_event_names() -> frozenset[str]:
    names = {event_name(kind, op) for kind in EntityKind for op in CHANGE_OPS}
    names.add(CONNECTION_EVENT)
    return frozenset(names)


EVENT_NAMES = _valid_event_names()


class Subscription:
    """Handle returned by ``subscribe``; call :meth:`unsubscribe` to detach.

    Unsubscribing twice is harmless.
    """

    def __init__(self, name: str, cancel: Callable[[], None]):
        self.name = name
        self._cancel = cancel
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if self._active:
            self._active = False
            self._cancel()

    def __repr__(self) -> str:
        state = "active" if self._active else "closed"
        return f"<Subscription {self.name!r} {state}>"


class EventBus:
    """Typed publish/subscribe registry with deterministic delivery order."""

    def __init__(self) -> None:
        self._handlers: dict[str, dict[int, Handler]] = {}
        self._ids = itertools.count()
        self._lock = threading.Lock()

    def subscribe(self, name: str, handler: Handler) -> Subscription:
        """Register *handler* for event *name*.

        Raises
        ------
        ValueError
            If *name* is not one of :data:`EVENT_NAMES`.
        """
        if name not in EVENT_NAMES:
            raise ValueError(
                f"Unknown event '{name}'. Expected '<kind>:create|update|delete' or 'connection'."
            )
        with self._lock:
            token = next(self._ids)
            self._handlers.setdefault(name, {})[token] = handler
        return Subscription(name, lambda: self._remove(name, token))

    def publish(self, name: str, payload: Any = None) -> int:
        """Deliver *payload* to every handler of *name*.

        Returns the number of handlers that completed without raising.
        """
        with self._lock:
            handlers = list(self._handlers.get(name, {}).values())

        delivered = 0
        for handler in handlers:
            try:
                handler(payload)
                delivered += 1
            except Exception:
                logger.exception("Handler for '%s' failed", name)
        return delivered

    def handler_count(self, name: str | None = None) -> int:
        with self._lock:
            if name is not None:
                return len(self._handlers.get(name, {}))
            return sum(len(h) for h in self._handlers.values())

    def clear(self) -> None:
        """Drop every registration."""
        with self._lock:
            self._handlers.clear()

    def _remove(self, name: str, token: int) -> None:
        with self._lock:
            handlers = self._handlers.get(name)
            if handlers is not None:
                handlers.pop(token, None)
                if not handlers:
                    del self._handlers[name]

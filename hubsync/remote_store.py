"""
hubsync/remote_store.py -- Boundary to the remote object store.

Defines the change notification passed from the store to the live patch
path, the :class:`RemoteStore` protocol the synchronizer and reconciler
program against, and :class:`InMemoryRemoteStore`, a complete local
implementation that delivers notifications synchronously on every write.

Usage::

    from hubsync.remote_store import InMemoryRemoteStore

    store = InMemoryRemoteStore()
    sub = store.subscribe("areas", print)
    record = store.save("areas", None, {"area": "Shelter"})
    store.save("areas", record["objectId"], {"description": "Roofs"})
    store.delete("areas", record["objectId"])
"""

from __future__ import annotations

import copy
import logging
import secrets
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, Optional, Protocol

from hubsync.event_bus import Subscription
from hubsync.exceptions import TransportError
from hubsync.models.base import EntityKind
from hubsync.utils import now_iso

logger = logging.getLogger(__name__)


class PatchOp(str, Enum):
    """Operations a store subscription can report."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    ENTER = "enter"
    LEAVE = "leave"

    @property
    def event_op(self) -> str:
        """The consumer-facing op: ``enter`` reads as create, ``leave`` as update."""
        if self is PatchOp.ENTER:
            return PatchOp.CREATE.value
        if self is PatchOp.LEAVE:
            return PatchOp.UPDATE.value
        return self.value


@dataclass(frozen=True)
class Notification:
    """One change reported by the store for one entity."""

    kind: EntityKind
    op: PatchOp
    payload: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def of(cls, kind: EntityKind | str, op: PatchOp | str, payload: Mapping[str, Any]) -> "Notification":
        return cls(EntityKind.parse(kind), PatchOp(op), payload)

    @property
    def entity_id(self) -> str | None:
        if not isinstance(self.payload, Mapping):
            return None
        value = self.payload.get("id") or self.payload.get("objectId")
        return str(value) if value else None

    @property
    def event_name(self) -> str:
        return f"{self.kind.value}:{self.op.event_op}"


NotificationHandler = Callable[[Notification], None]


class RemoteStore(Protocol):
    """What the synchronizer needs from the content store."""

    def query(
        self,
        kind: EntityKind | str,
        filters: Optional[Mapping[str, Any]] = None,
        sort: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """Return raw records of *kind*.  ``sort`` is a field name, ``-`` prefix for descending."""
        ...

    def save(
        self, kind: EntityKind | str, object_id: Optional[str], fields: Mapping[str, Any]
    ) -> dict[str, Any]:
        """Create (``object_id=None``) or update a record and return it."""
        ...

    def delete(self, kind: EntityKind | str, object_id: str) -> None:
        ...

    def subscribe(self, kind: EntityKind | str, handler: NotificationHandler) -> Subscription:
        ...


def pointer(kind: EntityKind | str, object_id: str) -> dict[str, str]:
    """Build a store pointer to an object of *kind*."""
    return {
        "__type": "Pointer",
        "className": EntityKind.parse(kind).class_name,
        "objectId": object_id,
    }


def _matches(record: Mapping[str, Any], filters: Mapping[str, Any]) -> bool:
    for key, expected in filters.items():
        actual = record.get(key)
        if isinstance(actual, Mapping) and "objectId" in actual and not isinstance(expected, Mapping):
            actual = actual["objectId"]
        if isinstance(actual, list) and not isinstance(expected, list):
            if expected not in actual:
                return False
        elif actual != expected:
            return False
    return True


def _sort_records(records: list[dict[str, Any]], sort: str) -> list[dict[str, Any]]:
    descending = sort.startswith("-")
    key_name = sort.lstrip("-")
    present = [r for r in records if r.get(key_name) is not None]
    missing = [r for r in records if r.get(key_name) is None]
    present.sort(key=lambda r: r[key_name], reverse=descending)
    return present + missing


# ---------------------------------------------------------------------------
# InMemoryRemoteStore
# ---------------------------------------------------------------------------

class InMemoryRemoteStore:
    """Dictionary-backed store with synchronous change notifications.

    Parameters
    ----------
    records : mapping, optional
        Initial records per kind.  Records without an ``objectId`` get one.
        Seeding does not emit notifications.
    """

    def __init__(self, records: Mapping[EntityKind | str, Iterable[Mapping[str, Any]]] | None = None):
        self._records: dict[EntityKind, dict[str, dict[str, Any]]] = {kind: {} for kind in EntityKind}
        self._handlers: dict[EntityKind, dict[int, NotificationHandler]] = {kind: {} for kind in EntityKind}
        self._next_token = 0
        self._lock = threading.RLock()

        for key, items in (records or {}).items():
            kind = EntityKind.parse(key)
            for item in items:
                record = self._stamp(dict(item), created=True)
                self._records[kind][record["objectId"]] = record

    # ------------------------------------------------------------------
    # RemoteStore protocol
    # ------------------------------------------------------------------

    def query(self, kind, filters=None, sort=None, limit=None) -> list[dict[str, Any]]:
        kind = EntityKind.parse(kind)
        with self._lock:
            records = [copy.deepcopy(r) for r in self._records[kind].values()]
        if filters:
            records = [r for r in records if _matches(r, filters)]
        if sort:
            records = _sort_records(records, sort)
        if limit is not None:
            records = records[:limit]
        return records

    def save(self, kind, object_id, fields) -> dict[str, Any]:
        kind = EntityKind.parse(kind)
        with self._lock:
            if object_id is None:
                record = self._stamp(dict(fields), created=True)
                self._records[kind][record["objectId"]] = record
                op = PatchOp.CREATE
            else:
                existing = self._records[kind].get(object_id)
                if existing is None:
                    raise TransportError(
                        f"{kind.class_name} '{object_id}' not found", status=404
                    )
                existing.update(copy.deepcopy(dict(fields)))
                existing["objectId"] = object_id
                record = self._stamp(existing, created=False)
                op = PatchOp.UPDATE
            snapshot = copy.deepcopy(record)

        self._notify(Notification(kind, op, snapshot))
        return copy.deepcopy(snapshot)

    def delete(self, kind, object_id) -> None:
        kind = EntityKind.parse(kind)
        with self._lock:
            record = self._records[kind].pop(object_id, None)
        if record is None:
            raise TransportError(f"{kind.class_name} '{object_id}' not found", status=404)
        self._notify(Notification(kind, PatchOp.DELETE, record))

    def subscribe(self, kind, handler) -> Subscription:
        kind = EntityKind.parse(kind)
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._handlers[kind][token] = handler

        def _cancel() -> None:
            with self._lock:
                self._handlers[kind].pop(token, None)

        return Subscription(kind.value, _cancel)

    # ------------------------------------------------------------------
    # Extras used by tests and local runs
    # ------------------------------------------------------------------

    def emit(self, kind: EntityKind | str, op: PatchOp | str, payload: Mapping[str, Any]) -> None:
        """Deliver a notification without touching the stored records.

        Simulates out-of-order or duplicated delivery from a real store.
        """
        self._notify(Notification.of(kind, op, dict(payload)))

    def subscriber_count(self, kind: EntityKind | str) -> int:
        with self._lock:
            return len(self._handlers[EntityKind.parse(kind)])

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _stamp(record: dict[str, Any], *, created: bool) -> dict[str, Any]:
        now = now_iso()
        if created:
            record.setdefault("objectId", record.pop("id", None) or secrets.token_hex(5))
            record.setdefault("createdAt", now)
        record["updatedAt"] = now
        return record

    def _notify(self, notification: Notification) -> None:
        with self._lock:
            handlers = list(self._handlers[notification.kind].values())
        for handler in handlers:
            handler(notification)

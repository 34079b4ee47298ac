"""
hubsync/synchronizer.py -- Facade owning one tree, one event bus, one store.

:class:`ContentSynchronizer` is the only thing consumers talk to.  It
builds the tree from the store (:meth:`refresh`), keeps it current from
store notifications once :meth:`start` has subscribed, answers queries,
and routes bulk imports through the reconciler.

Every tree mutation (a rebuild swap or a live patch) happens under a
single ``threading.RLock``.  Change events are published after the patch
has been applied and the lock released, so a handler that calls back
into the synchronizer sees the updated tree.

Usage:
    from hubsync.remote_store import InMemoryRemoteStore
    from hubsync.synchronizer import ContentSynchronizer

    sync = ContentSynchronizer(InMemoryRemoteStore(records))
    sync.start()
    sync.on_change("videos:create", lambda video: print(video.title))
    sync.search("gabion", {"minViews": 100})
    sync.stop()
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Optional

from hubsync import __version__
from hubsync.backup_manager import BackupManager
from hubsync.content_tree import StructuredTree
from hubsync.event_bus import CONNECTION_EVENT, EventBus, Handler, Subscription
from hubsync.exceptions import CatalogSyncError, TreeInconsistencyError
from hubsync.live_patch import AppliedPatch, LivePatchApplier
from hubsync.models.base import EntityKind
from hubsync.query_engine import QueryResult, SearchFilters, analytics, search
from hubsync.reconciler import ImportPolicy, ReconcileReport, Reconciler
from hubsync.remote_store import Notification, RemoteStore
from hubsync.structurer import structure_records
from hubsync.utils import now_utc

logger = logging.getLogger(__name__)

# Store-side ordering per collection.
QUERY_SORT: dict[EntityKind, Optional[str]] = {
    EntityKind.AREA: "area",
    EntityKind.SUBCATEGORY: None,
    EntityKind.VIDEO: "-createdAt",
    EntityKind.TAG: "name",
    EntityKind.LANGUAGE: "code",
}


class ContentSynchronizer:
    """Keeps a :class:`StructuredTree` in step with a remote store.

    Parameters
    ----------
    store : RemoteStore
        Source of records and change notifications; target of imports.
    bus : EventBus, optional
        Where change events are published.  A private bus is created when
        omitted.
    backup_manager : BackupManager, optional
        Used by :meth:`import_bulk` when the policy asks for a backup.
    tree : StructuredTree, optional
        Initial tree.  Defaults to an empty one until :meth:`refresh`.
    query_limit : int
        Maximum records fetched per collection on a rebuild.
    """

    def __init__(
        self,
        store: RemoteStore,
        *,
        bus: EventBus | None = None,
        backup_manager: BackupManager | None = None,
        tree: StructuredTree | None = None,
        query_limit: int = 1000,
    ):
        self.store = store
        self.bus = bus if bus is not None else EventBus()
        self.backup_manager = backup_manager
        self.query_limit = query_limit

        self._tree = tree if tree is not None else StructuredTree()
        self._lock = threading.RLock()
        self._applier = LivePatchApplier()
        self._subscriptions: list[Subscription] = []
        self._last_sync: datetime | None = None
        self._rebuilds = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def started(self) -> bool:
        return bool(self._subscriptions)

    def start(self) -> None:
        """Subscribe to every collection, then build the tree.

        Subscribing first means a change made while the initial fetch is
        in flight is either in the fetch or delivered afterwards.  A
        notification for a record the fetch already holds is applied as
        an update.  Calling ``start`` on a running synchronizer does
        nothing.

        Raises
        ------
        TransportError
            If subscribing or the initial fetch fails; nothing stays
            subscribed.
        """
        if self.started:
            return
        subscriptions: list[Subscription] = []
        try:
            for kind in EntityKind:
                subscriptions.append(self.store.subscribe(kind, self.handle_notification))
            self.refresh()
        except Exception:
            for subscription in subscriptions:
                subscription.unsubscribe()
            raise
        self._subscriptions = subscriptions
        logger.info("Subscribed to %d collections", len(self._subscriptions))
        self.bus.publish(CONNECTION_EVENT, {"status": "connected"})

    def stop(self) -> None:
        """Cancel every store subscription."""
        if not self.started:
            return
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions.clear()
        logger.info("Unsubscribed from the store")
        self.bus.publish(CONNECTION_EVENT, {"status": "disconnected"})

    def refresh(self, cancel_event: threading.Event | None = None) -> StructuredTree:
        """Rebuild the tree from a full fetch of every collection.

        The new tree is built separately and swapped in only once complete;
        a cancelled or failed rebuild leaves the current tree untouched.

        Raises
        ------
        TransportError
            If any collection cannot be fetched.
        SyncCancelled
            If *cancel_event* is set during the build.
        """
        with self._lock:
            raw = {
                kind: self.store.query(kind, sort=QUERY_SORT[kind], limit=self.query_limit)
                for kind in EntityKind
            }
            tree = structure_records(raw, cancel_event=cancel_event)
            self._tree = tree
            self._last_sync = now_utc()
            self._rebuilds += 1
        logger.info("Tree rebuilt from store (%d videos)", tree.count(EntityKind.VIDEO))
        return tree

    # ------------------------------------------------------------------
    # Live path
    # ------------------------------------------------------------------

    def handle_notification(self, notification: Notification) -> AppliedPatch | None:
        """Apply one store notification and publish the resulting event."""
        try:
            with self._lock:
                applied = self._applier.apply(self._tree, notification)
                if applied is not None:
                    self._last_sync = now_utc()
        except TreeInconsistencyError as exc:
            logger.error("Tree inconsistent after %s, rebuilding: %s", notification.event_name, exc)
            try:
                self.refresh()
            except CatalogSyncError:
                logger.exception("Rebuild after inconsistency failed")
            return None

        if applied is not None:
            self.bus.publish(applied.event_name, applied.entity)
        return applied

    # ------------------------------------------------------------------
    # Consumer API
    # ------------------------------------------------------------------

    def get_structured_tree(self) -> StructuredTree:
        """The live tree.

        It is patched in place by notification threads.  Walk it only from
        an event handler or when no subscription is running; from any other
        thread use :meth:`search`, :meth:`analytics` or
        :meth:`export_snapshot`, which read it under the lock.
        """
        with self._lock:
            return self._tree

    def on_change(self, event_name: str, handler: Handler) -> Subscription:
        """Subscribe to ``"<kind>:create|update|delete"`` or ``"connection"``."""
        return self.bus.subscribe(event_name, handler)

    def search(self, text: str | None = None, filters: SearchFilters | dict | None = None) -> QueryResult:
        with self._lock:
            return search(self._tree, text, filters)

    def analytics(self, top_n: int = 10) -> dict[str, Any]:
        with self._lock:
            return analytics(self._tree, top_n=top_n)

    def import_bulk(
        self,
        payload: dict[str, Any],
        policy: ImportPolicy | None = None,
        *,
        cancel_event: threading.Event | None = None,
    ) -> ReconcileReport:
        """Merge *payload* into the store.

        While started, the tree catches up through the store's
        notifications; otherwise it is rebuilt once the import finishes.
        """
        with self._lock:
            current = self._tree
        reconciler = Reconciler(self.store, self.backup_manager)
        report = reconciler.reconcile(payload, current, policy, cancel_event=cancel_event)
        if not self.started:
            self.refresh()
        logger.info("Import finished: %s", report.totals)
        return report

    def export_snapshot(self) -> dict[str, Any]:
        """Full catalog in the learning hub's shape plus export metadata."""
        with self._lock:
            snapshot = self._tree.to_dict()
            snapshot["metadata"] = {
                "version": __version__,
                "exportDate": now_utc().isoformat(),
                "totalAreas": self._tree.count(EntityKind.AREA),
                "totalSubcategories": sum(len(area.subcategories) for area in self._tree.areas),
                "totalVideos": self._tree.count(EntityKind.VIDEO),
                "totalTags": self._tree.count(EntityKind.TAG),
            }
        return snapshot

    def status(self) -> dict[str, Any]:
        with self._lock:
            tree = self._tree
            return {
                "connected": self.started,
                "lastSync": self._last_sync.isoformat() if self._last_sync else None,
                "rebuilds": self._rebuilds,
                "counts": {kind.value: tree.count(kind) for kind in EntityKind},
                "orphanedSubcategories": len(tree.orphans()),
                "pendingRelinks": sum(len(v) for v in tree.pending_relinks().values()),
                "handlers": self.bus.handler_count(),
            }

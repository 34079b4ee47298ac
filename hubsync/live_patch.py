"""
hubsync/live_patch.py -- Incremental application of store notifications.

Each notification is normalized and applied to an existing tree without a
rebuild.  Per kind and op:

    create / enter   insert, or update in place when the id is already known
    update / leave   replace fields; re-link when area_id / categories moved
    delete           remove from the flat collection and from every parent;
                     children become orphans waiting for the same parent id

An update or delete for an id the tree has never seen is ignored: the
entity will arrive with its create notification or the next full resync.
A payload that cannot be normalized is logged and dropped.

Usage:
    from hubsync.live_patch import LivePatchApplier
    from hubsync.remote_store import Notification

    applier = LivePatchApplier()
    applied = applier.apply(tree, Notification.of("videos", "create", record))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from hubsync.content_tree import StructuredTree
from hubsync.exceptions import MalformedRecordError
from hubsync.models.base import CatalogEntity, EntityKind
from hubsync.models.normalizer import normalize
from hubsync.remote_store import Notification, PatchOp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppliedPatch:
    """What a notification actually did to the tree."""

    kind: EntityKind
    op: str  # "create", "update" or "delete"
    entity: CatalogEntity

    @property
    def event_name(self) -> str:
        return f"{self.kind.value}:{self.op}"


class LivePatchApplier:
    """Stateless applier; the tree passed in is the only thing mutated."""

    def apply(self, tree: StructuredTree, notification: Notification) -> AppliedPatch | None:
        """Apply one notification to *tree*.

        Returns
        -------
        AppliedPatch or None
            ``None`` when the notification was dropped (malformed) or
            ignored (unknown id on update/delete).

        Raises
        ------
        TreeInconsistencyError
            If the tree turns out to be internally inconsistent; the owner
            is expected to discard it and rebuild.
        """
        kind = notification.kind
        op = notification.op

        if op is PatchOp.DELETE:
            return self._apply_delete(tree, notification)

        try:
            entity = normalize(kind, notification.payload)
        except MalformedRecordError as exc:
            logger.warning("Dropping %s notification: %s", notification.event_name, exc)
            return None

        known = tree.has(kind, entity.id)
        if op in (PatchOp.UPDATE, PatchOp.LEAVE) and not known:
            logger.debug("Ignoring %s for unknown %s '%s'", op.value, kind.value, entity.id)
            return None

        tree.put(entity)
        effective = "update" if known else "create"
        if op in (PatchOp.CREATE, PatchOp.ENTER) and known:
            logger.debug("Duplicate create for %s '%s' handled as update", kind.value, entity.id)
        return AppliedPatch(kind, effective, entity)

    @staticmethod
    def _apply_delete(tree: StructuredTree, notification: Notification) -> AppliedPatch | None:
        entity_id = notification.entity_id
        if not entity_id:
            logger.warning("Dropping %s notification: payload has no id", notification.event_name)
            return None

        removed = tree.remove(notification.kind, entity_id)
        if removed is None:
            logger.debug("Ignoring delete for unknown %s '%s'", notification.kind.value, entity_id)
            return None
        return AppliedPatch(notification.kind, "delete", removed)

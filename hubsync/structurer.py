"""
hubsync/structurer.py -- Cold-start construction of the Structured Tree.

Takes the four flat collections fetched from the store (plus languages)
and produces a brand-new :class:`~hubsync.content_tree.StructuredTree`.
Parents are inserted before children so that every resolvable link is made
on insert; anything still unresolved afterwards is an orphan held in the
tree's pending re-link index.

Usage:
    from hubsync.structurer import structure

    tree = structure(areas, subcategories, videos, tags)
    tree.areas[0].subcategories[0].videos[0].id
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from typing import Any

from hubsync.content_tree import StructuredTree
from hubsync.exceptions import SyncCancelled
from hubsync.models.base import CatalogEntity, EntityKind
from hubsync.models.normalizer import normalize_many

logger = logging.getLogger(__name__)

# Parents before children.
BUILD_ORDER = (
    EntityKind.AREA,
    EntityKind.SUBCATEGORY,
    EntityKind.VIDEO,
    EntityKind.TAG,
    EntityKind.LANGUAGE,
)


def _check_cancelled(cancel_event: threading.Event | None) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise SyncCancelled("tree rebuild cancelled")


def structure(
    areas: Iterable[CatalogEntity],
    subcategories: Iterable[CatalogEntity],
    videos: Iterable[CatalogEntity],
    tags: Iterable[CatalogEntity],
    languages: Iterable[CatalogEntity] = (),
    *,
    cancel_event: threading.Event | None = None,
) -> StructuredTree:
    """Build a new tree from normalized flat collections.

    Parameters
    ----------
    areas, subcategories, videos, tags, languages : iterable of entities
        Normalized entities (see :func:`hubsync.models.normalize`).
    cancel_event : threading.Event, optional
        When set, the build stops with :class:`SyncCancelled` and the
        partial tree is discarded.

    Returns
    -------
    StructuredTree
        A fresh tree; no prior tree is modified.
    """
    tree = StructuredTree()
    collections = {
        EntityKind.AREA: areas,
        EntityKind.SUBCATEGORY: subcategories,
        EntityKind.VIDEO: videos,
        EntityKind.TAG: tags,
        EntityKind.LANGUAGE: languages,
    }
    for kind in BUILD_ORDER:
        _check_cancelled(cancel_event)
        for entity in collections[kind]:
            tree.put(entity)

    orphan_count = len(tree.orphans())
    logger.info(
        "Structured %d areas, %d subcategories (%d orphaned), %d videos, %d tags",
        tree.count(EntityKind.AREA),
        tree.count(EntityKind.SUBCATEGORY),
        orphan_count,
        tree.count(EntityKind.VIDEO),
        tree.count(EntityKind.TAG),
    )
    return tree


def structure_records(
    raw_by_kind: Mapping[EntityKind | str, Iterable[Any]],
    *,
    cancel_event: threading.Event | None = None,
) -> StructuredTree:
    """Normalize raw store records per kind and build a tree from them.

    Malformed records are logged and skipped; they never abort the build.
    """
    normalized: dict[EntityKind, list[CatalogEntity]] = {kind: [] for kind in EntityKind}
    for key, records in raw_by_kind.items():
        kind = EntityKind.parse(key)
        entities, dropped = normalize_many(kind, records)
        if dropped:
            logger.warning("Dropped %d malformed %s record(s)", dropped, kind.value)
        normalized[kind].extend(entities)

    return structure(
        normalized[EntityKind.AREA],
        normalized[EntityKind.SUBCATEGORY],
        normalized[EntityKind.VIDEO],
        normalized[EntityKind.TAG],
        normalized[EntityKind.LANGUAGE],
        cancel_event=cancel_event,
    )

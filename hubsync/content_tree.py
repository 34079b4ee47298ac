"""
hubsync/content_tree.py -- The Structured Tree (NetworkX)

Holds the flat entity collections of the catalog plus a directed graph of
their parent/child links (Area -> Subcategory -> Video).  Nested, ordered
views are derived from the graph on demand, so in-place mutation by the
live patch path never leaves a stale nested copy behind.

Children whose parent is not (yet) present are kept in the flat
collections and recorded in a pending re-link index keyed by the missing
parent.  When that parent arrives the waiting children are attached in
O(k) for k waiting children.

Usage:
    from hubsync.content_tree import StructuredTree

    tree = StructuredTree()
    tree.put(area)
    tree.put(subcategory)
    tree.areas[0].subcategories[0].videos
    tree.orphans()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable

import networkx as nx

from hubsync.exceptions import LinkageError, TreeInconsistencyError
from hubsync.models.base import Area, CatalogEntity, EntityKind, Subcategory, Tag, Video
from hubsync.utils import EPOCH, now_utc, title_sort_key

logger = logging.getLogger(__name__)

Node = tuple[EntityKind, str]

# Kinds that take part in the parent/child graph.
LINKED_KINDS = (EntityKind.AREA, EntityKind.SUBCATEGORY, EntityKind.VIDEO)


def recency_key(video: Video) -> tuple[datetime, datetime]:
    """Sort key for "newest first": display date, then creation time."""
    return (video.date or EPOCH, video.created_at or EPOCH)


def sort_by_recency(videos: Iterable[Video]) -> list[Video]:
    return sorted(videos, key=recency_key, reverse=True)


def sort_by_title(subcategories: Iterable[Subcategory]) -> list[Subcategory]:
    return sorted(subcategories, key=lambda s: title_sort_key(s.title))


# ---------------------------------------------------------------------------
# Nested views
# ---------------------------------------------------------------------------

@dataclass
class SubcategoryNode:
    """A subcategory together with its resolved videos (newest first)."""

    subcategory: Subcategory
    videos: list[Video] = field(default_factory=list)

    @property
    def id(self) -> str:
        return self.subcategory.id

    @property
    def title(self) -> str:
        return self.subcategory.title

    def to_dict(self) -> dict[str, Any]:
        record = self.subcategory.to_record()
        record["videos"] = [v.to_record() for v in self.videos]
        return record


@dataclass
class AreaNode:
    """An area together with its resolved subcategories (sorted by title)."""

    area: Area
    subcategories: list[SubcategoryNode] = field(default_factory=list)

    @property
    def id(self) -> str:
        return self.area.id

    @property
    def name(self) -> str:
        return self.area.name

    def to_dict(self) -> dict[str, Any]:
        record = self.area.to_record()
        record["subcategories"] = [s.to_dict() for s in self.subcategories]
        return record


# ---------------------------------------------------------------------------
# StructuredTree
# ---------------------------------------------------------------------------

class StructuredTree:
    """Flat entity collections plus the Area -> Subcategory -> Video graph.

    Nodes of :attr:`graph` are ``(EntityKind, id)`` tuples so identifiers
    from different collections never collide.  Edges point from parent to
    child.  Tags and languages live only in the flat collections.
    """

    def __init__(self) -> None:
        self.entities: dict[EntityKind, dict[str, CatalogEntity]] = {
            kind: {} for kind in EntityKind
        }
        self.graph: nx.DiGraph = nx.DiGraph()

        # Reverse index: missing parent node -> child nodes waiting for it.
        self._pending: dict[Node, set[Node]] = {}

        self.last_updated: datetime = now_utc()

    # ------------------------------------------------------------------
    # Flat access
    # ------------------------------------------------------------------

    def get(self, kind: EntityKind, entity_id: str) -> CatalogEntity | None:
        return self.entities[kind].get(entity_id)

    def has(self, kind: EntityKind, entity_id: str) -> bool:
        return entity_id in self.entities[kind]

    def all(self, kind: EntityKind) -> list[CatalogEntity]:
        """Entities of *kind* in collection (insertion) order."""
        return list(self.entities[kind].values())

    def count(self, kind: EntityKind) -> int:
        return len(self.entities[kind])

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    @property
    def areas(self) -> list[AreaNode]:
        """Nested view: every area with its linked subcategories and videos."""
        return [
            AreaNode(
                area=area,
                subcategories=[
                    SubcategoryNode(subcategory=sub, videos=self.videos_of(sub.id))
                    for sub in self.subcategories_of(area.id)
                ],
            )
            for area in self.entities[EntityKind.AREA].values()
        ]

    @property
    def videos(self) -> list[Video]:
        """Flat video list, newest first."""
        return sort_by_recency(self.entities[EntityKind.VIDEO].values())

    @property
    def tags(self) -> list[Tag]:
        return list(self.entities[EntityKind.TAG].values())

    @property
    def tag_glossary(self) -> dict[str, str]:
        """Lower-cased tag name -> definition (or generated fallback)."""
        return dict(tag.glossary_entry() for tag in self.entities[EntityKind.TAG].values())

    def subcategories_of(self, area_id: str) -> list[Subcategory]:
        node = (EntityKind.AREA, area_id)
        if node not in self.graph:
            return []
        children = (self.entities[EntityKind.SUBCATEGORY][sid] for _, sid in self.graph.successors(node))
        return sort_by_title(children)

    def videos_of(self, subcategory_id: str) -> list[Video]:
        node = (EntityKind.SUBCATEGORY, subcategory_id)
        if node not in self.graph:
            return []
        children = (self.entities[EntityKind.VIDEO][vid] for _, vid in self.graph.successors(node))
        return sort_by_recency(children)

    def area_of(self, subcategory_id: str) -> str | None:
        """Id of the area a subcategory is linked under, or ``None``."""
        node = (EntityKind.SUBCATEGORY, subcategory_id)
        if node not in self.graph:
            return None
        for _, area_id in self.graph.predecessors(node):
            return area_id
        return None

    def orphans(self) -> list[Subcategory]:
        """Subcategories held in the flat collection but linked under no area."""
        return [
            sub for sub in self.entities[EntityKind.SUBCATEGORY].values()
            if self.graph.in_degree((EntityKind.SUBCATEGORY, sub.id)) == 0
        ]

    def unlinked_videos(self) -> list[Video]:
        """Videos that appear under no subcategory."""
        return [
            video for video in self.entities[EntityKind.VIDEO].values()
            if self.graph.in_degree((EntityKind.VIDEO, video.id)) == 0
        ]

    def pending_relinks(self) -> dict[Node, set[Node]]:
        """Copy of the pending re-link index (missing parent -> waiting children)."""
        return {parent: set(children) for parent, children in self._pending.items()}

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def put(self, entity: CatalogEntity) -> CatalogEntity | None:
        """Insert or replace *entity* and bring its links up to date.

        Returns the entity previously stored under the same id, or ``None``
        when this was an insert.

        Raises
        ------
        TreeInconsistencyError
            If the graph and the flat collections disagree about the entity.
        """
        kind = entity.kind
        collection = self.entities[kind]
        previous = collection.get(entity.id)
        node = (kind, entity.id)

        if kind in LINKED_KINDS:
            if previous is None and node in self.graph:
                raise TreeInconsistencyError(f"graph node {node} has no {kind.value} entity")
            if previous is not None and node not in self.graph:
                raise TreeInconsistencyError(f"{kind.value} '{entity.id}' is missing from the graph")

        collection[entity.id] = entity

        if kind is EntityKind.AREA:
            if previous is None:
                self.graph.add_node(node)
                self._resolve_pending(node)

        elif kind is EntityKind.SUBCATEGORY:
            if previous is None:
                self.graph.add_node(node)
            if previous is None or previous.area_id != entity.area_id:
                self._unlink_parents(node)
                if entity.area_id:
                    self._link_or_wait(node, (EntityKind.AREA, entity.area_id))
            if previous is None:
                self._resolve_pending(node)

        elif kind is EntityKind.VIDEO:
            if previous is None:
                self.graph.add_node(node)
            if previous is None or previous.categories != entity.categories:
                self._unlink_parents(node)
                for category_id in dict.fromkeys(entity.categories):
                    self._link_or_wait(node, (EntityKind.SUBCATEGORY, category_id))

        self._touch()
        return previous

    def remove(self, kind: EntityKind, entity_id: str) -> CatalogEntity | None:
        """Remove an entity without cascading to its children.

        Children stay in their flat collections and wait in the pending
        re-link index for an entity with the same id to reappear.  Returns
        the removed entity, or ``None`` if the id was unknown.
        """
        entity = self.entities[kind].pop(entity_id, None)
        if entity is None:
            return None

        if kind in LINKED_KINDS:
            node = (kind, entity_id)
            if node not in self.graph:
                raise TreeInconsistencyError(f"{kind.value} '{entity_id}' is missing from the graph")
            children = list(self.graph.successors(node))
            self._unlink_parents(node)
            self.graph.remove_node(node)
            if children:
                self._pending.setdefault(node, set()).update(children)

        self._touch()
        return entity

    # ------------------------------------------------------------------
    # Integrity
    # ------------------------------------------------------------------

    def check_integrity(self) -> list[str]:
        """Return a description of every broken invariant (empty when sound)."""
        problems: list[str] = []

        for kind in LINKED_KINDS:
            for entity_id in self.entities[kind]:
                if (kind, entity_id) not in self.graph:
                    problems.append(f"{kind.value} '{entity_id}' has no graph node")
        for node in self.graph.nodes:
            kind, entity_id = node
            if entity_id not in self.entities[kind]:
                problems.append(f"graph node {node} has no entity")

        for parent, child in self.graph.edges:
            parent_entity = self.entities[parent[0]].get(parent[1])
            child_entity = self.entities[child[0]].get(child[1])
            if parent_entity is None or child_entity is None:
                continue
            if isinstance(child_entity, Subcategory) and child_entity.area_id != parent_entity.id:
                problems.append(f"subcategory '{child_entity.id}' linked under wrong area '{parent_entity.id}'")
            if isinstance(child_entity, Video) and parent_entity.id not in child_entity.categories:
                problems.append(f"video '{child_entity.id}' linked under foreign subcategory '{parent_entity.id}'")

        for sub in self.entities[EntityKind.SUBCATEGORY].values():
            if self.graph.in_degree((EntityKind.SUBCATEGORY, sub.id)) > 1:
                problems.append(f"subcategory '{sub.id}' has more than one area")

        return problems

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """The full-catalog snapshot shape consumed by the learning hub."""
        return {
            "areas": [area.to_dict() for area in self.areas],
            "videos": [video.to_record() for video in self.videos],
            "tags": [tag.to_record() for tag in self.tags],
            "tagGlossary": self.tag_glossary,
            "lastUpdated": self.last_updated.isoformat(),
        }

    def flat_records(self) -> dict[str, list[dict[str, Any]]]:
        """Every flat collection as store-shaped records, keyed by collection."""
        return {
            kind.value: [entity.to_record() for entity in self.entities[kind].values()]
            for kind in EntityKind
        }

    # ------------------------------------------------------------------
    # Linking internals
    # ------------------------------------------------------------------

    def _link(self, child: Node, parent: Node) -> None:
        if parent not in self.graph:
            raise LinkageError((child[0].value, child[1]), (parent[0].value, parent[1]))
        self.graph.add_edge(parent, child)

    def _link_or_wait(self, child: Node, parent: Node) -> None:
        try:
            self._link(child, parent)
        except LinkageError as exc:
            self._pending.setdefault(parent, set()).add(child)
            logger.debug("Waiting for parent: %s", exc)

    def _unlink_parents(self, node: Node) -> None:
        self.graph.remove_edges_from(list(self.graph.in_edges(node)))
        for parent in list(self._pending):
            waiting = self._pending[parent]
            waiting.discard(node)
            if not waiting:
                del self._pending[parent]

    def _resolve_pending(self, parent: Node) -> None:
        for child in self._pending.pop(parent, set()):
            if child in self.graph:
                self.graph.add_edge(parent, child)

    def _touch(self) -> None:
        self.last_updated = now_utc()

"""
hubsync/reconciler.py -- Merge an import batch into the remote store.

A payload is a dict of flat item lists (``tags``, ``areas``,
``subcategories``, ``videos``, optionally ``languages``).  Kinds are
processed parents first so that children in the same batch can reference
parents created moments earlier:

    tags -> areas -> subcategories -> videos -> languages

Each item is matched to existing state by its natural key:

    tag            lower-cased name
    area           area name
    subcategory    uniqueId
    video          youtubeId, else exact title among videos without one
    language       code

Found + ``overwrite_existing`` -> update, found otherwise -> skipped,
not found -> create.  A failing item is recorded as ``{item, errors}`` in
the report and the pass moves on.  The reconciler only writes to the
store; the tree catches up through the store's change notifications.

Children name their parents by natural key:

    subcategory    ``area`` (area name) or ``areaId``
    video          ``subcategories`` (uniqueIds) or ``categories`` (ids)

Usage:
    from hubsync.reconciler import ImportPolicy, Reconciler

    report = Reconciler(store).reconcile(payload, tree, ImportPolicy(overwrite_existing=True))
    report.kinds["tags"].created
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Optional

from hubsync.backup_manager import BackupManager
from hubsync.content_tree import StructuredTree
from hubsync.exceptions import CatalogSyncError, ItemValidationError, SyncCancelled
from hubsync.models.base import EntityKind
from hubsync.models.validators import validate_item
from hubsync.remote_store import RemoteStore, pointer

logger = logging.getLogger(__name__)

IMPORT_ORDER = (
    EntityKind.TAG,
    EntityKind.AREA,
    EntityKind.SUBCATEGORY,
    EntityKind.VIDEO,
    EntityKind.LANGUAGE,
)

# Keys that describe structure in an import item and are never stored as-is.
_NESTING_KEYS = {
    EntityKind.AREA: ("subcategories", "id", "objectId"),
    EntityKind.SUBCATEGORY: ("area", "areaId", "area_id", "videos", "id", "objectId"),
    EntityKind.VIDEO: ("subcategories", "categories", "categoryIds", "id", "objectId"),
    EntityKind.TAG: ("id", "objectId"),
    EntityKind.LANGUAGE: ("id", "objectId"),
}


@dataclass(frozen=True)
class ImportPolicy:
    overwrite_existing: bool = False
    validate_data: bool = True
    create_backup: bool = True


@dataclass
class KindReport:
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": list(self.errors),
        }


@dataclass
class ReconcileReport:
    """Per-kind outcome of one reconcile pass."""

    kinds: dict[str, KindReport] = field(
        default_factory=lambda: {kind.value: KindReport() for kind in IMPORT_ORDER}
    )
    backup_path: Optional[str] = None

    def __getitem__(self, kind: EntityKind | str) -> KindReport:
        return self.kinds[EntityKind.parse(kind).value]

    @property
    def error_count(self) -> int:
        return sum(len(r.errors) for r in self.kinds.values())

    @property
    def totals(self) -> dict[str, int]:
        return {
            "created": sum(r.created for r in self.kinds.values()),
            "updated": sum(r.updated for r in self.kinds.values()),
            "skipped": sum(r.skipped for r in self.kinds.values()),
            "errors": self.error_count,
        }

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {name: r.to_dict() for name, r in self.kinds.items()}
        data["backupPath"] = self.backup_path
        return data


def flatten_nested_payload(areas: list[Mapping[str, Any]]) -> dict[str, list[dict[str, Any]]]:
    """Flatten the loader format (areas -> subcategories -> videos).

    Subcategories get an ``area`` key naming their area, videos get a
    ``subcategories`` key naming their subcategory.  A video listed under
    several subcategories is emitted once with every parent collected.
    """
    flat: dict[str, list[dict[str, Any]]] = {"areas": [], "subcategories": [], "videos": []}
    videos_by_key: dict[str, dict[str, Any]] = {}

    for area_item in areas:
        area_item = dict(area_item)
        subcategories = area_item.pop("subcategories", None) or []
        flat["areas"].append(area_item)
        for sub_item in subcategories:
            sub_item = dict(sub_item)
            videos = sub_item.pop("videos", None) or []
            sub_item.setdefault("area", area_item.get("area") or area_item.get("name"))
            flat["subcategories"].append(sub_item)
            for video_item in videos:
                video_item = dict(video_item)
                key = video_item.get("youtubeId") or f"title:{video_item.get('title')}"
                parent = sub_item.get("uniqueId")
                existing = videos_by_key.get(key)
                if existing is None:
                    video_item["subcategories"] = [parent] if parent else []
                    videos_by_key[key] = video_item
                    flat["videos"].append(video_item)
                elif parent and parent not in existing["subcategories"]:
                    existing["subcategories"].append(parent)
    return flat


class _KeyIndex:
    """Natural key -> store id, seeded from the tree and grown during a pass."""

    def __init__(self, tree: StructuredTree | None):
        self._keys: dict[EntityKind, dict[str, str]] = {kind: {} for kind in EntityKind}
        self._untitled_videos: dict[str, str] = {}
        self._subcategory_ids: set[str] = set()
        if tree is None:
            return
        for kind in EntityKind:
            for entity in tree.all(kind):
                self.add(kind, entity.natural_key(), entity.id, title=getattr(entity, "title", None))

    def add(self, kind: EntityKind, key: str | None, entity_id: str, *, title: str | None = None) -> None:
        if kind is EntityKind.SUBCATEGORY:
            self._subcategory_ids.add(entity_id)
        if key:
            self._keys[kind][key] = entity_id
        elif kind is EntityKind.VIDEO and title:
            self._untitled_videos[title] = entity_id

    def find(self, kind: EntityKind, key: str | None, *, title: str | None = None) -> str | None:
        if key:
            return self._keys[kind].get(key)
        if kind is EntityKind.VIDEO and title:
            return self._untitled_videos.get(title)
        return None

    def has_subcategory_id(self, entity_id: str) -> bool:
        return entity_id in self._subcategory_ids


def _key_field(item: Mapping[str, Any], *names: str) -> str | None:
    """First non-empty value among *names*; it must be a string."""
    for name in names:
        value = item.get(name)
        if value is None or value == "":
            continue
        if not isinstance(value, str):
            raise ItemValidationError([f"Wrong data type at '{name}': expected a string, got {type(value).__name__}"])
        return value
    return None


def _reference_list(item: Mapping[str, Any], name: str) -> list[str]:
    """The string references held under *name*, or an empty list."""
    refs = item.get(name) or []
    if not isinstance(refs, (list, tuple)) or not all(isinstance(r, str) for r in refs):
        raise ItemValidationError([f"Wrong data type at '{name}': expected a list of strings"])
    return list(refs)



def _natural_key(kind: EntityKind, item: Mapping[str, Any]) -> str | None:
    if kind is EntityKind.TAG:
        name = _key_field(item, "name")
        return name.lower() if name else None
    if kind is EntityKind.AREA:
        return _key_field(item, "area", "name")
    if kind is EntityKind.SUBCATEGORY:
        return _key_field(item, "uniqueId", "unique_id")
    if kind is EntityKind.VIDEO:
        return _key_field(item, "youtubeId", "youtube_id")
    return _key_field(item, "code")



class Reconciler:
    """Writes import batches to a :class:`RemoteStore`.

    Parameters
    ----------
    store : RemoteStore
        Destination for creates and updates.
    backup_manager : BackupManager, optional
        Used when the policy asks for a backup before mutating.
    """

    def __init__(self, store: RemoteStore, backup_manager: BackupManager | None = None):
        self.store = store
        self.backup_manager = backup_manager

    def reconcile(
        self,
        payload: Mapping[str, Any],
        current_state: StructuredTree | None,
        policy: ImportPolicy | None = None,
        *,
        cancel_event: threading.Event | None = None,
    ) -> ReconcileReport:
        """Merge *payload* into the store.

        Parameters
        ----------
        payload : mapping
            Flat item lists keyed by collection name.  A payload whose
            ``areas`` carry nested ``subcategories`` is flattened first.
        current_state : StructuredTree or None
            What the store is believed to hold; seeds the natural-key index.
        policy : ImportPolicy, optional
            Defaults to no overwrite, validation on, backup on.
        cancel_event : threading.Event, optional
            Checked between items.

        Raises
        ------
        SyncCancelled
            If *cancel_event* is set mid-pass.  Writes already made stay.
        """
        policy = policy or ImportPolicy()
        payload = _expand_nested(payload)
        report = ReconcileReport()

        if policy.create_backup and self.backup_manager is not None and current_state is not None:
            try:
                meta = self.backup_manager.create_backup(current_state.to_dict(), label="pre-import")
            except CatalogSyncError as exc:
                logger.warning("Pre-import backup failed, importing without one: %s", exc)
            else:
                report.backup_path = meta["path"]

        index = _KeyIndex(current_state)

        for kind in IMPORT_ORDER:
            items = payload.get(kind.value) or []
            if not items:
                continue
            kind_report = report[kind]
            for item in items:
                if cancel_event is not None and cancel_event.is_set():
                    raise SyncCancelled(f"Import cancelled while processing {kind.value}")
                try:
                    outcome = self._reconcile_item(kind, item, index, policy)
                except ItemValidationError as exc:
                    kind_report.errors.append({"item": item, "errors": exc.messages})
                    continue
                except CatalogSyncError as exc:
                    logger.warning("Import of %s item failed: %s", kind.value, exc)
                    kind_report.errors.append({"item": item, "errors": [str(exc)]})
                    continue
                except Exception as exc:
                    logger.exception("Unexpected failure importing %s item", kind.value)
                    kind_report.errors.append({"item": item, "errors": [f"{type(exc).__name__}: {exc}"]})
                    continue
                setattr(kind_report, outcome, getattr(kind_report, outcome) + 1)
            logger.info(
                "Imported %s: %d created, %d updated, %d skipped, %d error(s)",
                kind.value, kind_report.created, kind_report.updated,
                kind_report.skipped, len(kind_report.errors),
            )

        return report

    # ------------------------------------------------------------------
    # Per item
    # ------------------------------------------------------------------

    def _reconcile_item(
        self, kind: EntityKind, item: Any, index: _KeyIndex, policy: ImportPolicy
    ) -> str:
        if policy.validate_data:
            problems = validate_item(kind, item)
            if problems:
                raise ItemValidationError(problems)
        elif not isinstance(item, Mapping):
            raise ItemValidationError([f"Expected an object, got {type(item).__name__}"])

        key = _natural_key(kind, item)
        title = _key_field(item, "title") if kind is EntityKind.VIDEO else None
        existing_id = index.find(kind, key, title=title)

        if existing_id is not None and not policy.overwrite_existing:
            return "skipped"

        fields = self._store_fields(kind, item, index)
        if existing_id is not None:
            self.store.save(kind, existing_id, fields)
            return "updated"

        record = self.store.save(kind, None, fields)
        index.add(kind, key, record["objectId"], title=title)
        return "created"

    @staticmethod
    def _store_fields(kind: EntityKind, item: Mapping[str, Any], index: _KeyIndex) -> dict[str, Any]:
        fields = {
            k: v for k, v in item.items()
            if k not in _NESTING_KEYS[kind] and v is not None
        }

        if kind is EntityKind.SUBCATEGORY:
            area_id = _key_field(item, "areaId", "area_id")
            area_name = _key_field(item, "area")
            if not area_id and area_name:
                area_id = index.find(EntityKind.AREA, area_name)
                if area_id is None:
                    raise ItemValidationError([f"Unknown area '{area_name}'"])
            if area_id:
                fields["area"] = pointer(EntityKind.AREA, area_id)

        elif kind is EntityKind.VIDEO:
            categories: list[str] = []
            unknown: list[str] = []
            for unique_id in _reference_list(item, "subcategories"):
                sub_id = index.find(EntityKind.SUBCATEGORY, unique_id)
                if sub_id is None:
                    unknown.append(unique_id)
                elif sub_id not in categories:
                    categories.append(sub_id)
            for sub_id in _reference_list(item, "categories") or _reference_list(item, "categoryIds"):
                if not index.has_subcategory_id(sub_id):
                    unknown.append(sub_id)
                elif sub_id not in categories:
                    categories.append(sub_id)
            if unknown:
                raise ItemValidationError([f"Unknown subcategory '{ref}'" for ref in unknown])
            if categories or "subcategories" in item or "categories" in item:
                fields["categories"] = categories

        return fields


def _expand_nested(payload: Mapping[str, Any]) -> dict[str, Any]:
    areas = payload.get("areas") or []
    if not any(isinstance(a, Mapping) and a.get("subcategories") for a in areas):
        return dict(payload)

    flat = flatten_nested_payload(areas)
    expanded = dict(payload)
    expanded["areas"] = flat["areas"]
    expanded["subcategories"] = list(payload.get("subcategories") or []) + flat["subcategories"]
    expanded["videos"] = list(payload.get("videos") or []) + flat["videos"]
    return expanded

"""
hubsync/models/normalizer.py -- Remote record -> canonical entity.

The store hands back records in its own envelope: ``objectId`` instead of
``id``, parent links as ``Pointer`` objects (sometimes expanded into the
full parent when the query used ``include``), dates as ``Date`` objects.
:func:`normalize` unwraps all of that and validates the result into one of
the models in :mod:`hubsync.models.base`, filling every optional field.

Usage::

    from hubsync.models.normalizer import normalize

    video = normalize("videos", {"objectId": "V1", "title": "Gabion Wall"})
    video.views        # 0
    video.categories   # []
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import ValidationError

from hubsync.exceptions import MalformedRecordError
from hubsync.models.base import ENTITY_MODELS, CatalogEntity, EntityKind
from hubsync.utils import slugify

logger = logging.getLogger(__name__)


def _pointer_id(value: Any) -> str | None:
    """Return the object id a pointer (or bare id string) refers to."""
    if isinstance(value, Mapping):
        ref = value.get("objectId") or value.get("id")
        return str(ref) if ref else None
    if isinstance(value, str) and value:
        return value
    return None


def _prepare_subcategory(record: dict[str, Any]) -> None:
    area_ref = record.pop("area", None)
    if area_ref is None:
        area_ref = record.pop("parentArea", None)
    if not record.get("areaId") and not record.get("area_id"):
        area_id = _pointer_id(area_ref)
        if area_id:
            record["areaId"] = area_id

    has_key = any(record.get(k) for k in ("unique_id", "uniqueId", "naturalKey", "subcategoryId"))
    if not has_key:
        area_name = ""
        if isinstance(area_ref, Mapping):
            area_name = area_ref.get("area") or area_ref.get("name") or ""
        prefix = slugify(area_name) or record.get("areaId") or record.get("area_id") or "subcategory"
        record["uniqueId"] = f"{prefix}-{record.get('id')}"


def _prepare_video(record: dict[str, Any]) -> None:
    key = next((k for k in ("categories", "categoryIds") if k in record), None)
    if key is not None and isinstance(record[key], list):
        record[key] = [ref for ref in (_pointer_id(v) for v in record[key]) if ref]

    parent = _pointer_id(record.pop("parentSubcategory", None))
    if parent:
        key = key or "categories"
        existing = list(record.get(key) or [])
        if parent not in existing:
            existing.append(parent)
        record[key] = existing


_PREPARERS = {
    EntityKind.SUBCATEGORY: _prepare_subcategory,
    EntityKind.VIDEO: _prepare_video,
}


def normalize(kind: EntityKind | str, raw_record: Any) -> CatalogEntity:
    """Convert a remote record of *kind* into its canonical entity.

    Parameters
    ----------
    kind : EntityKind or str
        Collection name (``"videos"``), class name (``"Video"``) or enum.
    raw_record : mapping
        The record as delivered by the store or an import file.

    Returns
    -------
    CatalogEntity
        Fully defaulted model instance.

    Raises
    ------
    MalformedRecordError
        If the record is not a mapping, has no identifier, or carries a
        value of an impossible type.
    """
    try:
        kind = EntityKind.parse(kind)
    except ValueError as exc:
        raise MalformedRecordError(str(exc)) from exc

    if not isinstance(raw_record, Mapping):
        raise MalformedRecordError(
            f"{kind.class_name} record must be an object, got {type(raw_record).__name__}"
        )

    record = dict(raw_record)
    record.pop("__type", None)
    record.pop("className", None)
    if not record.get("id") and record.get("objectId"):
        record["id"] = record.pop("objectId")
    if not record.get("id"):
        raise MalformedRecordError(f"{kind.class_name} record has no identifier")
    record["id"] = str(record["id"])

    preparer = _PREPARERS.get(kind)
    if preparer is not None:
        preparer(record)

    model = ENTITY_MODELS[kind]
    try:
        return model.model_validate(record)
    except ValidationError as exc:
        raise MalformedRecordError(
            f"{kind.class_name} '{record['id']}' could not be normalized: {exc}"
        ) from exc


def normalize_many(
    kind: EntityKind | str, raw_records: Iterable[Any]
) -> tuple[list[CatalogEntity], int]:
    """Normalize a batch, skipping malformed records.

    Returns
    -------
    tuple[list[CatalogEntity], int]
        The normalized entities (input order preserved) and the number of
        records that were dropped.
    """
    entities: list[CatalogEntity] = []
    dropped = 0
    for raw in raw_records:
        try:
            entities.append(normalize(kind, raw))
        except MalformedRecordError as exc:
            dropped += 1
            logger.warning("Skipping record: %s", exc)
    return entities, dropped

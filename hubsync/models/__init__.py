"""
hubsync/models/ -- Pydantic v2 models for catalog entities.

Submodules:
    base        Entity models (Area, Subcategory, Video, Tag, Language).
    normalizer  Remote record -> canonical entity conversion.
    validators  JSON Schema checks for bulk-import items.
"""

from hubsync.models.base import (
    ENTITY_MODELS,
    Area,
    CatalogEntity,
    EntityKind,
    Language,
    Subcategory,
    Tag,
    Video,
)
from hubsync.models.normalizer import normalize, normalize_many

__all__ = [
    "ENTITY_MODELS",
    "Area",
    "CatalogEntity",
    "EntityKind",
    "Language",
    "Subcategory",
    "Tag",
    "Video",
    "normalize",
    "normalize_many",
]

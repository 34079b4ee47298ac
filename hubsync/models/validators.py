"""
hubsync/models/validators.py -- Structural validation of import items.

Import items are checked against small JSON Schemas before anything is
written to the store.  The checks are deliberately narrow: required
natural-key fields, their length ceilings, and the types of the fields the
reconciler reads.  Everything else is passed through to the store as-is.

Usage::

    from hubsync.models.validators import validate_item

    problems = validate_item("tags", {"name": ""})
    # ["Issue at 'name': '' should be non-empty"]
"""

from __future__ import annotations

import logging
from typing import Any

import jsonschema

from hubsync.models.base import EntityKind

logger = logging.getLogger(__name__)

TAG_NAME_MAX = 50
AREA_NAME_MAX = 100
TITLE_MAX = 200

_STRING_LIST = {"type": "array", "items": {"type": "string"}}

IMPORT_SCHEMAS: dict[EntityKind, dict] = {
    EntityKind.TAG: {
        "type": "object",
        "required": ["name"],
        "properties": {
            "name": {"type": "string", "minLength": 1, "maxLength": TAG_NAME_MAX},
            "definition": {"type": ["string", "null"]},
            "color": {"type": ["string", "null"]},
        },
    },
    EntityKind.AREA: {
        "type": "object",
        "required": ["area"],
        "properties": {
            "area": {"type": "string", "minLength": 1, "maxLength": AREA_NAME_MAX},
            "name": {"type": "string"},
            "icon": {"type": ["string", "null"]},
            "description": {"type": ["string", "null"]},
        },
    },
    EntityKind.SUBCATEGORY: {
        "type": "object",
        "required": ["uniqueId", "title"],
        "properties": {
            "uniqueId": {"type": "string", "minLength": 1, "maxLength": TITLE_MAX},
            "title": {"type": "string", "minLength": 1, "maxLength": TITLE_MAX},
            "area": {"type": "string"},
            "areaId": {"type": "string"},
            "area_id": {"type": "string"},
            "unique_id": {"type": "string"},
            "tags": _STRING_LIST,
            "materials": {"type": "array"},
            "processSteps": {"type": "array"},
        },
    },
    EntityKind.VIDEO: {
        "type": "object",
        "required": ["title"],
        "properties": {
            "title": {"type": "string", "minLength": 1, "maxLength": TITLE_MAX},
            "youtubeId": {"type": ["string", "null"]},
            "youtube_id": {"type": ["string", "null"]},
            "subcategories": _STRING_LIST,
            "categories": _STRING_LIST,
            "categoryIds": _STRING_LIST,
            "tags": {"type": ["array", "string"], "items": {"type": "string"}},
            "views": {"type": ["integer", "null"], "minimum": 0},
            "rating": {"type": ["number", "null"]},
        },
    },
    EntityKind.LANGUAGE: {
        "type": "object",
        "required": ["code"],
        "properties": {
            "code": {"type": "string", "minLength": 1, "maxLength": 16},
            "name": {"type": ["string", "null"]},
        },
    },
}

_VALIDATORS = {
    kind: jsonschema.Draft202012Validator(schema) for kind, schema in IMPORT_SCHEMAS.items()
}


def humanize_error(error: jsonschema.ValidationError) -> str:
    """Convert a ``jsonschema.ValidationError`` into plain English."""
    path = " -> ".join(str(p) for p in error.absolute_path) if error.absolute_path else "(root)"
    msg = error.message
    if error.validator == "required":
        return f"Missing required field at {path}: {msg}"
    if error.validator == "type":
        return f"Wrong data type at '{path}': {msg}"
    if error.validator == "maxLength":
        return f"Too long at '{path}': {msg}"
    if error.validator == "minLength":
        return f"Empty value at '{path}': {msg}"
    return f"Issue at '{path}': {msg}"


def validate_item(kind: EntityKind | str, item: Any) -> list[str]:
    """Validate one import item.

    Returns
    -------
    list[str]
        Human-readable problems; empty when the item is acceptable.
    """
    kind = EntityKind.parse(kind)
    if not isinstance(item, dict):
        return [f"Wrong data type at '(root)': expected an object, got {type(item).__name__}"]
    validator = _VALIDATORS[kind]
    errors = sorted(validator.iter_errors(item), key=lambda e: list(e.absolute_path))
    return [humanize_error(e) for e in errors]

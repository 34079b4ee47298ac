"""
hubsync/models/base.py -- Canonical in-memory shapes of catalog entities.

Each model accepts the spellings the content store and the import files
use for the same field (``area`` / ``name`` / ``displayName`` for an
area's display name, ``categories`` / ``categoryIds`` for a video's
subcategory membership, and so on) and always serialises back to the
store's field names.  Optional fields are defaulted so downstream code
never has to check for absence.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from hubsync.utils import parse_timestamp

DEFAULT_AREA_ICON = "fas fa-folder"
DEFAULT_VIDEO_ICON = "fas fa-video"
DEFAULT_VIDEO_COLOR = "#6c757d"
DEFAULT_TAG_COLOR = "#8b5cf6"
DEFAULT_LICENCE = "Standard YouTube License"


class EntityKind(str, Enum):
    """Entity collections held by the store, keyed by collection name."""

    AREA = "areas"
    SUBCATEGORY = "subcategories"
    VIDEO = "videos"
    TAG = "tags"
    LANGUAGE = "languages"

    @property
    def class_name(self) -> str:
        """The store's class name for this collection (``"Area"``...)."""
        return _CLASS_NAMES[self]

    @classmethod
    def parse(cls, value: "EntityKind | str") -> "EntityKind":
        """Resolve a collection name, class name, or singular name.

        Raises
        ------
        ValueError
            If *value* names no known collection.
        """
        if isinstance(value, cls):
            return value
        text = str(value).strip()
        for kind in cls:
            if text in (kind.value, kind.class_name) or text.lower() == kind.class_name.lower():
                return kind
        raise ValueError(f"Unknown entity kind: {value!r}")


_CLASS_NAMES = {
    EntityKind.AREA: "Area",
    EntityKind.SUBCATEGORY: "Subcategory",
    EntityKind.VIDEO: "Video",
    EntityKind.TAG: "Tag",
    EntityKind.LANGUAGE: "Language",
}


def _as_list(value: Any) -> list:
    """None -> [], comma-separated string -> list of stripped parts."""
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _zero_if_none(value: Any) -> Any:
    return 0 if value is None or value == "" else value


# ------------------------------------------------------------------
# Base
# ------------------------------------------------------------------

class CatalogEntity(BaseModel):
    """Fields shared by every catalog entity."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    kind: ClassVar[EntityKind]

    id: str = Field(min_length=1, validation_alias=AliasChoices("id", "objectId"))
    created_at: Optional[datetime] = Field(
        default=None,
        validation_alias=AliasChoices("created_at", "createdAt"),
        serialization_alias="createdAt",
    )
    updated_at: Optional[datetime] = Field(
        default=None,
        validation_alias=AliasChoices("updated_at", "updatedAt"),
        serialization_alias="updatedAt",
    )

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _coerce_timestamps(cls, value: Any) -> Any:
        return parse_timestamp(value)

    def natural_key(self) -> str | None:
        """Human-meaningful de-duplication key, or ``None`` if the kind has none."""
        return None

    def to_record(self) -> dict[str, Any]:
        """JSON-ready dict using the store's field names."""
        return self.model_dump(mode="json", by_alias=True)


# ------------------------------------------------------------------
# Concrete entities
# ------------------------------------------------------------------

class Area(CatalogEntity):
    kind: ClassVar[EntityKind] = EntityKind.AREA

    name: str = Field(
        default="",
        validation_alias=AliasChoices("name", "area", "displayName"),
        serialization_alias="area",
    )
    icon: str = Field(
        default=DEFAULT_AREA_ICON,
        validation_alias=AliasChoices("icon", "iconRef"),
    )
    feather_icon: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("feather_icon", "featherIcon"),
        serialization_alias="featherIcon",
    )
    svg_string: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("svg_string", "svgString"),
        serialization_alias="svgString",
    )
    description: str = ""

    @field_validator("name", "description", mode="before")
    @classmethod
    def _blank_if_none(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("icon", mode="before")
    @classmethod
    def _default_icon(cls, value: Any) -> Any:
        return value or DEFAULT_AREA_ICON

    def natural_key(self) -> str | None:
        return self.name or None


class Subcategory(CatalogEntity):
    kind: ClassVar[EntityKind] = EntityKind.SUBCATEGORY

    unique_id: str = Field(
        default="",
        validation_alias=AliasChoices("unique_id", "uniqueId", "naturalKey", "subcategoryId"),
        serialization_alias="uniqueId",
    )
    title: str = ""
    subtitle: str = ""
    description: str = ""
    context: str = ""
    materials: list[Any] = Field(default_factory=list)
    process_steps: list[Any] = Field(
        default_factory=list,
        validation_alias=AliasChoices("process_steps", "processSteps"),
        serialization_alias="processSteps",
    )
    tags: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("tags", "tagList"),
    )
    area_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("area_id", "areaId"),
        serialization_alias="areaId",
    )

    @field_validator("title", "subtitle", "description", "context", mode="before")
    @classmethod
    def _blank_if_none(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("materials", "process_steps", mode="before")
    @classmethod
    def _lists(cls, value: Any) -> list:
        return _as_list(value)

    @field_validator("tags", mode="before")
    @classmethod
    def _tag_list(cls, value: Any) -> list:
        return [str(v) for v in _as_list(value)]

    def natural_key(self) -> str | None:
        return self.unique_id or None


class Video(CatalogEntity):
    kind: ClassVar[EntityKind] = EntityKind.VIDEO

    title: str = ""
    youtube_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("youtube_id", "youtubeId", "youtubeRef"),
        serialization_alias="youtubeId",
    )
    description: str = Field(
        default="",
        validation_alias=AliasChoices("description", "videoDescription"),
    )
    categories: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("categories", "categoryIds"),
    )
    tags: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("tags", "tagList", "videoTags"),
    )
    views: int = Field(default=0, validation_alias=AliasChoices("views", "viewCount"))
    rating: float = 0
    duration: Optional[str] = None
    creator: Optional[str] = None
    authors: str = ""
    licence: str = DEFAULT_LICENCE
    local_video_filename: str = Field(
        default="",
        validation_alias=AliasChoices("local_video_filename", "localVideoFilename", "localFilename"),
        serialization_alias="localVideoFilename",
    )
    icon_tag_fa: str = Field(
        default=DEFAULT_VIDEO_ICON,
        validation_alias=AliasChoices("icon_tag_fa", "iconFA"),
    )
    color_tag: str = Field(
        default=DEFAULT_VIDEO_COLOR,
        validation_alias=AliasChoices("color_tag", "colorTag"),
    )
    date: Optional[datetime] = None

    @field_validator("title", "description", "authors", mode="before")
    @classmethod
    def _blank_if_none(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("youtube_id", "creator", mode="before")
    @classmethod
    def _none_if_blank(cls, value: Any) -> Any:
        return value or None

    @field_validator("duration", mode="before")
    @classmethod
    def _duration_text(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        return str(value)

    @field_validator("categories", "tags", mode="before")
    @classmethod
    def _lists(cls, value: Any) -> list:
        return [str(v) for v in _as_list(value)]

    @field_validator("views", "rating", mode="before")
    @classmethod
    def _numbers(cls, value: Any) -> Any:
        return _zero_if_none(value)

    @field_validator("licence", mode="before")
    @classmethod
    def _default_licence(cls, value: Any) -> Any:
        return value or DEFAULT_LICENCE

    @field_validator("icon_tag_fa", mode="before")
    @classmethod
    def _default_icon(cls, value: Any) -> Any:
        return value or DEFAULT_VIDEO_ICON

    @field_validator("color_tag", mode="before")
    @classmethod
    def _default_color(cls, value: Any) -> Any:
        return value or DEFAULT_VIDEO_COLOR

    @field_validator("date", mode="before")
    @classmethod
    def _coerce_date(cls, value: Any) -> Any:
        return parse_timestamp(value)

    @model_validator(mode="after")
    def _date_falls_back_to_created_at(self) -> "Video":
        if self.date is None:
            self.date = self.created_at
        return self

    def natural_key(self) -> str | None:
        return self.youtube_id


class Tag(CatalogEntity):
    kind: ClassVar[EntityKind] = EntityKind.TAG

    name: str = ""
    definition: Optional[str] = None
    color: str = DEFAULT_TAG_COLOR

    @field_validator("name", mode="before")
    @classmethod
    def _blank_if_none(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("color", mode="before")
    @classmethod
    def _default_color(cls, value: Any) -> Any:
        return value or DEFAULT_TAG_COLOR

    def natural_key(self) -> str | None:
        return self.name.lower() or None

    def glossary_entry(self) -> tuple[str, str]:
        """``(lower-cased name, definition)`` with a generated fallback."""
        return self.name.lower(), self.definition or f"{self.name} related content"


class Language(CatalogEntity):
    kind: ClassVar[EntityKind] = EntityKind.LANGUAGE

    name: str = ""
    code: str = ""
    native_name: str = Field(
        default="",
        validation_alias=AliasChoices("native_name", "nativeName"),
        serialization_alias="nativeName",
    )
    direction: str = "ltr"

    @field_validator("name", "code", "native_name", mode="before")
    @classmethod
    def _blank_if_none(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("direction", mode="before")
    @classmethod
    def _default_direction(cls, value: Any) -> Any:
        return value or "ltr"

    def natural_key(self) -> str | None:
        return self.code or None


ENTITY_MODELS: dict[EntityKind, type[CatalogEntity]] = {
    EntityKind.AREA: Area,
    EntityKind.SUBCATEGORY: Subcategory,
    EntityKind.VIDEO: Video,
    EntityKind.TAG: Tag,
    EntityKind.LANGUAGE: Language,
}

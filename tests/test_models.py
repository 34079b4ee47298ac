"""
Tests for hubsync/models -- entity models, normalizer, import validators.

Validates:
    - EntityKind name resolution
    - Defaults applied to every optional field
    - Parse envelopes: objectId, Pointer, Date
    - Malformed records raise MalformedRecordError
    - JSON Schema validation of import items
"""

import pytest

from hubsync.exceptions import MalformedRecordError
from hubsync.models import Area, EntityKind, Subcategory, Tag, Video, normalize, normalize_many
from hubsync.models.validators import validate_item


# ---------------------------------------------------------------------------
# EntityKind
# ---------------------------------------------------------------------------

class TestEntityKind:
    """Tests for EntityKind.parse and class names."""

    @pytest.mark.parametrize("value", ["videos", "Video", "video", EntityKind.VIDEO])
    def test_parse_accepts_collection_and_class_names(self, value):
        """Collection names, class names and the enum itself all resolve."""
        assert EntityKind.parse(value) is EntityKind.VIDEO

    def test_parse_rejects_unknown(self):
        """An unknown name raises ValueError."""
        with pytest.raises(ValueError):
            EntityKind.parse("playlists")

    def test_class_name(self):
        """class_name is the store's class for the collection."""
        assert EntityKind.SUBCATEGORY.class_name == "Subcategory"


# ---------------------------------------------------------------------------
# Normalizer
# ---------------------------------------------------------------------------

class TestNormalizeDefaults:
    """Optional fields resolve to their documented defaults."""

    def test_video_defaults(self):
        """A bare video gets empty lists, zero counters and the stock styling."""
        video = normalize("videos", {"objectId": "V1", "title": "Gabion Wall"})
        assert isinstance(video, Video)
        assert video.id == "V1"
        assert video.categories == []
        assert video.tags == []
        assert video.views == 0
        assert video.rating == 0
        assert video.licence == "Standard YouTube License"
        assert video.icon_tag_fa == "fas fa-video"
        assert video.color_tag == "#6c757d"
        assert video.youtube_id is None

    def test_video_null_counters_become_zero(self):
        """Explicit nulls from the store are treated as missing."""
        video = normalize("videos", {"objectId": "V1", "views": None, "rating": None})
        assert video.views == 0
        assert video.rating == 0

    def test_video_date_falls_back_to_created_at(self):
        """Without a date the creation time is used for ordering."""
        video = normalize("videos", {"objectId": "V1", "createdAt": "2024-02-01T10:00:00.000Z"})
        assert video.date == video.created_at
        assert video.date.year == 2024

    def test_area_default_icon(self):
        """An area without an icon gets the folder icon."""
        area = normalize("areas", {"objectId": "A1", "displayName": "Shelter"})
        assert isinstance(area, Area)
        assert area.name == "Shelter"
        assert area.icon == "fas fa-folder"

    def test_tag_default_color_and_glossary_fallback(self):
        """A tag without a definition gets a generated glossary entry."""
        tag = normalize("tags", {"objectId": "T1", "name": "Bamboo"})
        assert isinstance(tag, Tag)
        assert tag.color == "#8b5cf6"
        assert tag.glossary_entry() == ("bamboo", "Bamboo related content")

    def test_language_direction_default(self):
        """Languages default to left-to-right."""
        language = normalize("languages", {"objectId": "L1", "code": "en"})
        assert language.direction == "ltr"


class TestNormalizeEnvelopes:
    """Parse-specific shapes are unwrapped."""

    def test_subcategory_area_pointer(self):
        """A Pointer in ``area`` becomes area_id."""
        sub = normalize("subcategories", {
            "objectId": "S1",
            "uniqueId": "shelter-0",
            "title": "Methods",
            "area": {"__type": "Pointer", "className": "Area", "objectId": "A1"},
        })
        assert isinstance(sub, Subcategory)
        assert sub.area_id == "A1"

    def test_subcategory_parent_area_pointer(self):
        """The loader's ``parentArea`` pointer is accepted too."""
        sub = normalize("subcategories", {
            "objectId": "S1",
            "subcategoryId": "shelter-0",
            "parentArea": {"__type": "Pointer", "className": "Area", "objectId": "A1"},
        })
        assert sub.area_id == "A1"
        assert sub.unique_id == "shelter-0"

    def test_subcategory_unique_id_fallback(self):
        """Without a natural key one is derived from the area and id."""
        sub = normalize("subcategories", {
            "objectId": "S7",
            "area": {"__type": "Object", "className": "Area", "objectId": "A1", "area": "Water & Sanitation"},
        })
        assert sub.unique_id == "water-sanitation-S7"
        assert sub.area_id == "A1"

    def test_video_pointer_categories_and_parent(self):
        """Category pointers and parentSubcategory both become category ids."""
        video = normalize("videos", {
            "objectId": "V1",
            "categories": [{"__type": "Pointer", "className": "Subcategory", "objectId": "S1"}],
            "parentSubcategory": {"__type": "Pointer", "className": "Subcategory", "objectId": "S2"},
        })
        assert video.categories == ["S1", "S2"]

    def test_video_comma_separated_tags(self):
        """A tag string is split on commas."""
        video = normalize("videos", {"objectId": "V1", "videoTags": "water, filtration ,"})
        assert video.tags == ["water", "filtration"]

    def test_parse_date_object(self):
        """A Parse Date object is read from its ``iso`` member."""
        video = normalize("videos", {
            "objectId": "V1",
            "date": {"__type": "Date", "iso": "2024-03-05T12:00:00.000Z"},
        })
        assert video.date.month == 3
        assert video.date.tzinfo is not None

    def test_flattened_names_accepted(self):
        """Already-flattened records (id, areaId, categoryIds) normalize too."""
        sub = normalize("subcategories", {"id": "S1", "areaId": "A1", "naturalKey": "shelter-0", "title": "Methods"})
        video = normalize("videos", {"id": "V1", "categoryIds": ["S1"], "title": "Gabion Wall"})
        assert sub.area_id == "A1"
        assert video.categories == ["S1"]

    def test_to_record_uses_store_names(self):
        """to_record emits the store's field names."""
        record = normalize("areas", {"objectId": "A1", "area": "Shelter"}).to_record()
        assert record["area"] == "Shelter"
        assert record["id"] == "A1"


class TestNormalizeErrors:
    """Records that cannot be normalized raise MalformedRecordError."""

    def test_not_a_mapping(self):
        """A list is not a record."""
        with pytest.raises(MalformedRecordError):
            normalize("videos", ["V1"])

    def test_missing_identifier(self):
        """A record without id or objectId is rejected."""
        with pytest.raises(MalformedRecordError):
            normalize("videos", {"title": "No id"})

    def test_impossible_field_type(self):
        """A non-numeric view count is rejected."""
        with pytest.raises(MalformedRecordError):
            normalize("videos", {"objectId": "V1", "views": "lots"})

    def test_unknown_kind(self):
        """An unknown collection name is a malformed record."""
        with pytest.raises(MalformedRecordError):
            normalize("playlists", {"objectId": "P1"})

    def test_normalize_many_skips_bad_records(self):
        """normalize_many keeps the good records and counts the rest."""
        entities, dropped = normalize_many("tags", [{"objectId": "T1", "name": "a"}, {"name": "b"}, 7])
        assert [t.id for t in entities] == ["T1"]
        assert dropped == 2


# ---------------------------------------------------------------------------
# Import validation
# ---------------------------------------------------------------------------

class TestValidateItem:
    """Tests for validate_item against the import schemas."""

    def test_valid_tag(self):
        """A named tag passes."""
        assert validate_item("tags", {"name": "bamboo"}) == []

    def test_tag_name_required(self):
        """A tag without a name fails."""
        problems = validate_item("tags", {"definition": "x"})
        assert len(problems) == 1
        assert "Missing required field" in problems[0]

    def test_tag_name_too_long(self):
        """Tag names are limited to 50 characters."""
        problems = validate_item("tags", {"name": "x" * 51})
        assert problems and "Too long" in problems[0]

    def test_area_name_limit(self):
        """Area names are limited to 100 characters."""
        assert validate_item("areas", {"area": "x" * 100}) == []
        assert validate_item("areas", {"area": "x" * 101})

    def test_subcategory_requires_unique_id_and_title(self):
        """Both natural key and title are required."""
        problems = validate_item("subcategories", {})
        assert len(problems) == 2

    def test_video_requires_title(self):
        """Videos need a title."""
        assert validate_item("videos", {"youtubeId": "abc"})
        assert validate_item("videos", {"title": "Gabion Wall"}) == []

    def test_negative_views_rejected(self):
        """View counts cannot be negative."""
        assert validate_item("videos", {"title": "x", "views": -1})

    def test_non_object_item(self):
        """A non-dict item is reported, not raised."""
        problems = validate_item("tags", "bamboo")
        assert problems and "Wrong data type" in problems[0]

"""
Tests for hubsync/query_engine.py -- search and analytics.

Validates:
    - Each predicate on its own and AND-composed
    - Tree order preserved in results
    - Case-sensitive tag matching
    - Analytics figures and that analytics never reorder the tree
"""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from hubsync.query_engine import SearchFilters, analytics, search


def ids(result):
    return [v.id for v in result.results]


# ---------------------------------------------------------------------------
# SearchFilters
# ---------------------------------------------------------------------------

class TestSearchFilters:
    """Tests for filter parsing."""

    def test_camel_case_keys(self):
        """The hub's camelCase keys are accepted."""
        filters = SearchFilters.model_validate({"minViews": 100, "hasYouTubeId": True})
        assert filters.min_views == 100
        assert filters.has_youtube_id is True

    def test_date_range_from_dict(self):
        """A start/end dict becomes an aware datetime pair."""
        filters = SearchFilters.model_validate({"dateRange": {"start": "2024-01-01", "end": None}})
        assert filters.date_range[0] == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert filters.date_range[1] is None

    def test_unknown_key_rejected(self):
        """Misspelt filter names fail loudly."""
        with pytest.raises(ValidationError):
            SearchFilters.model_validate({"minview": 3})


# ---------------------------------------------------------------------------
# search
# ---------------------------------------------------------------------------

class TestSearch:
    """Tests for search()."""

    def test_no_predicates_returns_everything_in_order(self, tree):
        """Without text or filters every video is returned, newest first."""
        result = search(tree)
        assert ids(result) == ["V2", "V1", "V3", "V4"]
        assert result.total_found == 4

    def test_text_matches_title(self, tree):
        """Text search is a case-insensitive substring match on the title."""
        assert ids(search(tree, "GABION")) == ["V1"]

    def test_text_matches_description(self, tree):
        """The description is searched too."""
        assert ids(search(tree, "village well")) == ["V3"]

    def test_text_matches_tag(self, tree):
        """Tag names are searched case-insensitively."""
        assert ids(search(tree, "roofing")) == ["V2"]
        assert ids(search(tree, "bamboo")) == ["V2"]

    def test_area_filter(self, tree):
        """Area membership is resolved through subcategories."""
        assert ids(search(tree, filters={"areas": ["A1"]})) == ["V2", "V1"]
        assert ids(search(tree, filters={"areas": ["A2"]})) == ["V3"]

    def test_tag_filter_is_case_sensitive(self, tree):
        """Tag filtering compares the stored strings exactly."""
        assert ids(search(tree, filters={"tags": ["Bamboo"]})) == ["V2"]
        assert ids(search(tree, filters={"tags": ["bamboo"]})) == []

    def test_tag_filter_any_of(self, tree):
        """Any one of the requested tags is enough."""
        assert ids(search(tree, filters={"tags": ["gabion", "water"]})) == ["V1", "V3"]

    def test_min_views(self, tree):
        """Videos below the threshold are excluded."""
        assert ids(search(tree, filters={"minViews": 300})) == ["V2", "V1"]

    def test_has_youtube_id(self, tree):
        """Presence and absence of a YouTube id can both be required."""
        assert ids(search(tree, filters=SearchFilters(has_youtube_id=True))) == ["V2", "V1"]
        assert ids(search(tree, filters=SearchFilters(has_youtube_id=False))) == ["V3", "V4"]

    def test_creators(self, tree):
        """Only listed creators are kept."""
        assert ids(search(tree, filters={"creators": ["Alice"]})) == ["V1", "V3"]

    def test_date_range(self, tree):
        """The date range is inclusive at both ends."""
        result = search(tree, filters={"dateRange": {"start": "2023-11-20", "end": "2024-01-01"}})
        assert ids(result) == ["V1", "V3"]

    def test_predicates_compose_with_and(self, tree):
        """All predicates must hold."""
        result = search(tree, "a", {"areas": ["A1"], "creators": ["Alice"], "minViews": 1000})
        assert ids(result) == ["V1"]
        assert result.query == "a"

    def test_result_to_dict(self, tree):
        """The serialised result carries records and the count."""
        data = search(tree, "gabion").to_dict()
        assert data["totalFound"] == 1
        assert data["results"][0]["youtubeId"] == "vHfN4gYFgu8"


# ---------------------------------------------------------------------------
# analytics
# ---------------------------------------------------------------------------

class TestAnalytics:
    """Tests for analytics()."""

    def test_summary(self, tree):
        """Counts and total views."""
        summary = analytics(tree)["summary"]
        assert summary == {
            "totalAreas": 2,
            "totalSubcategories": 4,
            "totalVideos": 4,
            "totalTags": 2,
            "totalViews": 1850,
        }

    def test_distribution(self, tree):
        """Per-area counts, tag usage by count and monthly growth."""
        distribution = analytics(tree)["distribution"]
        assert distribution["videosByArea"] == {"Shelter": 3, "Water": 1}
        assert distribution["subcategoriesByArea"] == {"Shelter": 2, "Water": 1}
        assert set(distribution["tagUsage"]) == {"gabion", "walls", "Bamboo", "roofing", "water", "filtration"}
        assert distribution["contentGrowth"] == {"2022-05": 1, "2023-11": 1, "2024-01": 1, "2024-03": 1}

    def test_quality(self, tree):
        """Quality figures count what is filled in."""
        quality = analytics(tree)["quality"]
        assert quality["videosWithYouTubeId"] == 2
        assert quality["subcategoriesWithMaterials"] == 2
        assert quality["averageTagsPerVideo"] == 1.5
        assert quality["orphanedSubcategories"] == 1
        assert quality["unlinkedVideos"] == 1
        assert 0 < quality["contentCompleteness"] <= 100

    def test_engagement(self, tree):
        """Top lists are sorted and limited."""
        engagement = analytics(tree, top_n=2)["engagement"]
        assert [v["id"] for v in engagement["topViewedVideos"]] == ["V1", "V2"]
        assert [v["id"] for v in engagement["topRatedVideos"]] == ["V2", "V1"]
        assert len(engagement["mostUsedTags"]) == 2
        assert len(engagement["recentActivity"]) == 2
        assert engagement["recentActivity"][0]["id"] == "V2"

    def test_analytics_do_not_reorder_tree(self, tree):
        """Computing analytics leaves the stored order alone."""
        before = [v.id for v in tree.videos]
        subs_before = [s.id for s in tree.areas[0].subcategories]
        analytics(tree)
        assert [v.id for v in tree.videos] == before
        assert [s.id for s in tree.areas[0].subcategories] == subs_before

    def test_empty_tree(self):
        """An empty catalog yields zeros rather than errors."""
        from hubsync.content_tree import StructuredTree

        data = analytics(StructuredTree())
        assert data["summary"]["totalVideos"] == 0
        assert data["quality"]["averageTagsPerVideo"] == 0.0

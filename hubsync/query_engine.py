"""
hubsync/query_engine.py -- Search and analytics over the Structured Tree.

:func:`search` filters the tree's flat video list with AND-composed
predicates and keeps the tree's order (newest first).  :func:`analytics`
summarises the catalog for the admin dashboard.  Neither function mutates
or re-sorts anything stored in the tree.

Tag filtering compares the strings stored on each video exactly, so
``"Bamboo"`` does not match a video tagged ``"bamboo"`` even though the
tag glossary and the import merge both key tags by lower-cased name.
This mirrors how the hub has always behaved and is kept on purpose until
the intended semantics are settled.

Usage::

    from hubsync.query_engine import SearchFilters, search

    result = search(tree, "gabion", SearchFilters(min_views=100))
    result.total_found
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from hubsync.content_tree import StructuredTree
from hubsync.models.base import EntityKind, Video
from hubsync.utils import EPOCH, parse_timestamp

logger = logging.getLogger(__name__)


class SearchFilters(BaseModel):
    """Optional predicates; an unset predicate does not filter.

    Accepts both snake_case and the hub's camelCase keys
    (``minViews``, ``hasYouTubeId``, ``dateRange``).
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    areas: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    min_views: int = Field(default=0, ge=0, validation_alias=AliasChoices("min_views", "minViews"))
    has_youtube_id: Optional[bool] = Field(
        default=None, validation_alias=AliasChoices("has_youtube_id", "hasYouTubeId")
    )
    creators: list[str] = Field(default_factory=list)
    date_range: Optional[tuple[Optional[datetime], Optional[datetime]]] = Field(
        default=None, validation_alias=AliasChoices("date_range", "dateRange")
    )

    @field_validator("date_range", mode="before")
    @classmethod
    def _coerce_range(cls, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, dict):
            value = (value.get("start"), value.get("end"))
        start, end = value
        return (parse_timestamp(start), parse_timestamp(end))


@dataclass
class QueryResult:
    results: list[Video]
    total_found: int
    query: str = ""
    filters: SearchFilters = field(default_factory=SearchFilters)

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": [v.to_record() for v in self.results],
            "totalFound": self.total_found,
            "query": self.query,
            "filters": self.filters.model_dump(mode="json"),
        }


def _matches_text(video: Video, needle: str) -> bool:
    if needle in video.title.lower():
        return True
    if video.description and needle in video.description.lower():
        return True
    return any(needle in tag.lower() for tag in video.tags)


def search(
    tree: StructuredTree,
    text: str | None = None,
    filters: SearchFilters | dict | None = None,
) -> QueryResult:
    """Filter the tree's videos.

    Parameters
    ----------
    tree : StructuredTree
        The materialized view to search.
    text : str, optional
        Case-insensitive substring matched against title, description and
        tag names.
    filters : SearchFilters or dict, optional
        Additional predicates, combined with AND.

    Returns
    -------
    QueryResult
        Matching videos in the tree's stored order plus their count.  No
        pagination is applied.
    """
    if filters is None:
        filters = SearchFilters()
    elif isinstance(filters, dict):
        filters = SearchFilters.model_validate(filters)

    results = tree.videos

    needle = (text or "").strip().lower()
    if needle:
        results = [v for v in results if _matches_text(v, needle)]

    if filters.areas:
        wanted = set(filters.areas)
        subcategory_ids = {
            sub.id for sub in tree.all(EntityKind.SUBCATEGORY) if sub.area_id in wanted
        }
        results = [v for v in results if any(c in subcategory_ids for c in v.categories)]

    if filters.tags:
        results = [v for v in results if any(tag in v.tags for tag in filters.tags)]

    if filters.min_views > 0:
        results = [v for v in results if v.views >= filters.min_views]

    if filters.has_youtube_id is not None:
        results = [v for v in results if bool(v.youtube_id) == filters.has_youtube_id]

    if filters.creators:
        creators = set(filters.creators)
        results = [v for v in results if v.creator and v.creator in creators]

    if filters.date_range is not None:
        start, end = filters.date_range
        results = [
            v for v in results
            if v.date is not None
            and (start is None or v.date >= start)
            and (end is None or v.date <= end)
        ]

    logger.debug("Search %r matched %d video(s)", text, len(results))
    return QueryResult(results=results, total_found=len(results), query=text or "", filters=filters)


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------

def _tag_usage(videos: list[Video]) -> dict[str, int]:
    counts = Counter(tag for video in videos for tag in video.tags)
    return dict(counts.most_common())


def _content_growth(videos: list[Video]) -> dict[str, int]:
    months = Counter(v.date.strftime("%Y-%m") for v in videos if v.date is not None)
    return dict(sorted(months.items()))


def _completeness(video: Video) -> float:
    checks = (
        bool(video.title),
        bool(video.description),
        bool(video.youtube_id),
        bool(video.tags),
        bool(video.categories),
    )
    return sum(checks) / len(checks)


def _recent_activity(tree: StructuredTree, limit: int) -> list[dict[str, Any]]:
    entries = []
    for kind in (EntityKind.AREA, EntityKind.SUBCATEGORY, EntityKind.VIDEO, EntityKind.TAG):
        for entity in tree.all(kind):
            stamp = entity.updated_at or entity.created_at
            if stamp is None:
                continue
            label = getattr(entity, "title", "") or getattr(entity, "name", "")
            entries.append({
                "kind": kind.value,
                "id": entity.id,
                "label": label,
                "updatedAt": stamp.isoformat(),
                "_sort": stamp,
            })
    entries.sort(key=lambda e: e["_sort"], reverse=True)
    for entry in entries:
        del entry["_sort"]
    return entries[:limit]


def analytics(tree: StructuredTree, top_n: int = 10) -> dict[str, Any]:
    """Summary, distribution, quality and engagement figures for the catalog."""
    videos = tree.videos
    subcategories = tree.all(EntityKind.SUBCATEGORY)
    area_nodes = tree.areas
    tag_usage = _tag_usage(videos)

    total_tags_on_videos = sum(len(v.tags) for v in videos)
    average_tags = round(total_tags_on_videos / len(videos), 2) if videos else 0.0
    completeness = (
        round(100 * sum(_completeness(v) for v in videos) / len(videos), 1) if videos else 0.0
    )

    by_views = sorted(videos, key=lambda v: v.views, reverse=True)
    by_rating = sorted(videos, key=lambda v: (v.rating, v.date or EPOCH), reverse=True)

    return {
        "summary": {
            "totalAreas": tree.count(EntityKind.AREA),
            "totalSubcategories": len(subcategories),
            "totalVideos": len(videos),
            "totalTags": tree.count(EntityKind.TAG),
            "totalViews": sum(v.views for v in videos),
        },
        "distribution": {
            "videosByArea": {
                node.name: sum(len(s.videos) for s in node.subcategories) for node in area_nodes
            },
            "subcategoriesByArea": {node.name: len(node.subcategories) for node in area_nodes},
            "tagUsage": tag_usage,
            "contentGrowth": _content_growth(videos),
        },
        "quality": {
            "videosWithYouTubeId": sum(1 for v in videos if v.youtube_id),
            "subcategoriesWithMaterials": sum(1 for s in subcategories if s.materials),
            "averageTagsPerVideo": average_tags,
            "contentCompleteness": completeness,
            "orphanedSubcategories": len(tree.orphans()),
            "unlinkedVideos": len(tree.unlinked_videos()),
        },
        "engagement": {
            "topViewedVideos": [
                {"id": v.id, "title": v.title, "views": v.views} for v in by_views[:top_n]
            ],
            "topRatedVideos": [
                {"id": v.id, "title": v.title, "rating": v.rating} for v in by_rating[:top_n]
            ],
            "mostUsedTags": [
                {"tag": tag, "count": count} for tag, count in list(tag_usage.items())[:top_n]
            ],
            "recentActivity": _recent_activity(tree, top_n),
        },
    }

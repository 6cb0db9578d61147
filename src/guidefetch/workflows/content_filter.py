"""Pass/fail evaluation of guides against per-category severity ceilings."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..core.keys import K_EXTERNAL_ID
from .guide_cache import GuideCache
from .models import CATEGORIES, FILTER_PRESETS, ContentFilter, Guide

PARENTAL_GUIDE_KEY = "parentalGuide"


def passes(guide: Guide, content_filter: ContentFilter) -> bool:
    """Return True when every bounded category is at or below its ceiling.

    Guides without data always pass, so missing data never hides a title from a
    caller whose filter is permissive by default.
    """

    if not guide.data_available:
        return True
    for category in CATEGORIES:
        ceiling = content_filter.bound(category)
        if ceiling is None:
            continue
        if guide.severity(category) > ceiling:
            return False
    return True


def filter_by_content(guides: Iterable[Guide], content_filter: ContentFilter) -> List[Guide]:
    return [guide for guide in guides if passes(guide, content_filter)]


def filter_catalog(
    entries: Iterable[Mapping[str, Any]],
    content_filter: ContentFilter,
    cache: GuideCache,
) -> List[Dict[str, Any]]:
    """Filter caller catalog entries using cached guides.

    Entries whose guide is cached are kept only when it passes, annotated with
    the guide under ``parentalGuide``. Entries with no id or no cached guide are
    kept unchanged.
    """

    kept: List[Dict[str, Any]] = []
    for entry in entries:
        external_id = entry.get(K_EXTERNAL_ID) or entry.get("external_id")
        cached = cache.get(str(external_id)) if external_id else None
        if cached is None:
            kept.append(dict(entry))
            continue
        if passes(cached.guide, content_filter):
            kept.append({**entry, PARENTAL_GUIDE_KEY: cached.guide.to_dict()})
    return kept


def build_filter(preset: Optional[str] = None, overrides: Optional[Mapping[str, Any]] = None) -> ContentFilter:
    """Start from a named preset (default unbounded) and apply per-category overrides."""

    base = ContentFilter()
    if preset:
        try:
            base = FILTER_PRESETS[preset.strip().lower()]
        except KeyError:
            raise ValueError(f"Unknown filter preset: {preset}") from None
    cleaned = {key: value for key, value in (overrides or {}).items() if value is not None}
    if not cleaned:
        return base
    return base.merged(ContentFilter.from_mapping(cleaned).bounds)


__all__ = ["PARENTAL_GUIDE_KEY", "passes", "filter_by_content", "filter_catalog", "build_filter"]

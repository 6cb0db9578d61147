from datetime import datetime, timezone

import pytest

from guidefetch.workflows.content_filter import build_filter, filter_by_content, filter_catalog, passes
from guidefetch.workflows.guide_cache import GuideCache
from guidefetch.workflows.models import (
    FILTER_PRESETS,
    Category,
    CategoryRecord,
    ContentFilter,
    Guide,
    Severity,
    empty_guide,
)

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def _guide(external_id: str, **severities: Severity) -> Guide:
    records = {
        name: CategoryRecord(Category[name.upper()], severity)
        for name, severity in severities.items()
    }
    return Guide(external_id=external_id, last_updated=NOW, **records)


def test_empty_filter_passes_everything() -> None:
    guide = _guide("tt1", violence=Severity.SEVERE, nudity=Severity.SEVERE)

    assert passes(guide, ContentFilter()) is True


def test_ceiling_is_inclusive() -> None:
    content_filter = ContentFilter.from_mapping({"violence": "moderate"})

    assert passes(_guide("tt1", violence=Severity.MODERATE), content_filter) is True
    assert passes(_guide("tt2", violence=Severity.SEVERE), content_filter) is False


def test_guides_without_data_always_pass() -> None:
    assert passes(empty_guide("tt3"), FILTER_PRESETS["family"]) is True


def test_loosening_a_bound_never_rejects_more() -> None:
    guides = [
        _guide("tt1", violence=Severity.MILD),
        _guide("tt2", violence=Severity.MODERATE, profanity=Severity.SEVERE),
        _guide("tt3", nudity=Severity.MILD),
    ]
    strict = ContentFilter.from_mapping({"violence": "none", "profanity": "mild"})
    loose = ContentFilter.from_mapping({"violence": "moderate", "profanity": "mild"})

    strict_ids = {guide.external_id for guide in filter_by_content(guides, strict)}
    loose_ids = {guide.external_id for guide in filter_by_content(guides, loose)}

    assert strict_ids <= loose_ids
    assert strict_ids == {"tt3"}
    assert loose_ids == {"tt1", "tt3"}


def test_build_filter_with_preset_and_overrides() -> None:
    content_filter = build_filter("family", {"violence": "mild", "nudity": None, "profanity": "any"})

    assert content_filter.bound(Category.VIOLENCE) is Severity.MILD
    assert content_filter.bound(Category.NUDITY) is Severity.NONE
    assert content_filter.bound(Category.PROFANITY) is None

    with pytest.raises(ValueError):
        build_filter("toddler")


def test_filter_catalog_keeps_uncached_entries() -> None:
    cache = GuideCache(None, clock=lambda: NOW)
    cache.put("tt1", _guide("tt1", violence=Severity.SEVERE))
    cache.put("tt2", _guide("tt2", violence=Severity.MILD))
    entries = [
        {"imdbId": "tt1", "title": "Loud"},
        {"imdbId": "tt2", "title": "Quiet"},
        {"imdbId": "tt3", "title": "Unknown"},
        {"title": "No id"},
    ]

    kept = filter_catalog(entries, FILTER_PRESETS["teen"], cache)

    assert [entry["title"] for entry in kept] == ["Quiet", "Unknown", "No id"]
    assert kept[0]["parentalGuide"]["violence"]["severity"] == "mild"
    assert "parentalGuide" not in kept[1]

"""High-level exports for the guide workflows."""

from .batch import BatchRequest, CancellationToken, resolve_and_fetch_all
from .content_filter import build_filter, filter_by_content, filter_catalog, passes
from .errors import FetchError, GuideFetchError, StorageError
from .extractor import extract_guide
from .fetch_client import FetchConfig, GuideFetchClient
from .guide_cache import GuideCache, is_stale
from .models import (
    CATEGORIES,
    FILTER_PRESETS,
    CacheEntry,
    Category,
    CategoryRecord,
    ContentFilter,
    Guide,
    Severity,
)
from .resolver import resolve_from_release_date, resolve_identifier
from .service import GuideService

__all__ = [
    "BatchRequest",
    "CancellationToken",
    "resolve_and_fetch_all",
    "build_filter",
    "filter_by_content",
    "filter_catalog",
    "passes",
    "FetchError",
    "GuideFetchError",
    "StorageError",
    "extract_guide",
    "FetchConfig",
    "GuideFetchClient",
    "GuideCache",
    "is_stale",
    "CATEGORIES",
    "FILTER_PRESETS",
    "CacheEntry",
    "Category",
    "CategoryRecord",
    "ContentFilter",
    "Guide",
    "Severity",
    "resolve_from_release_date",
    "resolve_identifier",
    "GuideService",
]

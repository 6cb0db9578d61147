"""Shared serialization keys to avoid magic strings across guidefetch modules."""

from __future__ import annotations

# Guide document keys (durable cache layout)
K_EXTERNAL_ID = "imdbId"
K_SECONDARY_ID = "tmdbId"
K_LAST_UPDATED = "lastUpdated"
K_DATA_AVAILABLE = "dataAvailable"
K_CERTIFIED = "certified"

# Category record keys
K_CATEGORY = "category"
K_SEVERITY = "severity"
K_ITEMS = "items"

# Batch request keys
K_TITLE = "title"
K_YEAR = "year"
K_RELEASE_DATE = "releaseDate"

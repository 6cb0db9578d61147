"""Guide fetch defaults (endpoints, headers, selectors, paths).

Centralizes static defaults so the fetch, extraction and cache modules have no
embedded magic strings. These are baseline constants used to construct a policy;
callers can inject their own GuidePolicy/FetchConfig to override any of them.
"""

from __future__ import annotations

from pathlib import Path

# Endpoints
BASE_URL = "https://www.imdb.com"
SEARCH_PATH = "/find"
GUIDE_PATH_TEMPLATE = "/title/{external_id}/parentalguide/"

# Browser identity; the source rejects obvious non-browser clients
BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)
BROWSER_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Accept-Encoding": "gzip, deflate",
    "DNT": "1",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
}

# Guide page markers
SECTION_MARKER_TEMPLATE = '[data-testid="sub-section-{slug}"]'
SUMMARY_ITEM_SELECTOR = '[data-testid="rating-item"]'
HTML_CONTENT_SELECTOR = ".ipc-html-content-inner-div"
ITEM_CARD_SELECTOR = '[data-testid="item-id"]'
ITEM_TEXT_SELECTOR = '[data-testid="item-html"] .ipc-html-content-inner-div'
COMMUNITY_VOTE_MARKERS = ("severity-vote-button", "Vote", "found this to have")
EMPTY_ITEM_PLACEHOLDER = "None."

# Search results markers
SEARCH_RESULT_SELECTOR = ".ipc-metadata-list-summary-item__t"
EXTERNAL_ID_PATTERN = r"/title/(tt\d+)/"

# Extraction limits
MAX_ITEMS_PER_CATEGORY = 10
MIN_CARD_TEXT_CHARS = 3
MIN_FALLBACK_TEXT_CHARS = 10

# Policy defaults
REQUEST_DELAY_MS = 1000
MAX_RETRIES = 3
REQUEST_TIMEOUT_SECONDS = 20.0
CACHE_MAX_AGE_DAYS = 7
SHUTDOWN_TIMEOUT_SECONDS = 5.0

# Paths (working-directory relative)
CACHE_PATH = Path("run") / "guide_cache" / "parental-guides.json"

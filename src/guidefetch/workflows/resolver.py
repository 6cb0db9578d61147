"""Resolve a free-text title (and optional year) to a canonical external id."""

from __future__ import annotations

import logging
import re
from typing import Optional, Protocol

from bs4 import BeautifulSoup

from .errors import FetchError
from .fetch_client import FetchConfig
from .guide_config import EXTERNAL_ID_PATTERN, SEARCH_RESULT_SELECTOR
from .guide_utils import build_search_query, parse_year, year_from_release_date

logger = logging.getLogger(__name__)

_EXTERNAL_ID_RE = re.compile(EXTERNAL_ID_PATTERN)


class PageFetcher(Protocol):
    config: FetchConfig

    async def fetch(self, url: str) -> str: ...


def parse_search_results(document: str) -> Optional[str]:
    """Return the external id linked by the first search result, if any."""

    soup = BeautifulSoup(document or "", "lxml")
    first = soup.select_one(SEARCH_RESULT_SELECTOR)
    if first is None:
        return None
    href = first.get("href")
    if not href:
        link = first.find("a", href=True)
        href = link.get("href") if link is not None else None
    if not href:
        return None
    match = _EXTERNAL_ID_RE.search(str(href))
    return match.group(1) if match else None


async def resolve_identifier(client: PageFetcher, title: str, year: Optional[int] = None) -> Optional[str]:
    """Search for ``title`` and return the first matching external id.

    No match is an expected outcome and returns None; so does a search page
    that could not be fetched after retries.
    """

    if not (title or "").strip():
        return None
    query = build_search_query(title, parse_year(year))
    url = client.config.search_url(query)
    try:
        document = await client.fetch(url)
    except FetchError as exc:
        logger.error("search failed for %r: %s", query, exc)
        return None
    external_id = parse_search_results(document)
    if external_id is None:
        logger.info("no search result for %r", query)
    else:
        logger.debug("resolved %r -> %s", query, external_id)
    return external_id


async def resolve_from_release_date(
    client: PageFetcher,
    title: str,
    release_date: Optional[str] = None,
) -> Optional[str]:
    """Resolve using the year of an ISO release date; an unparseable date is ignored."""

    return await resolve_identifier(client, title, year_from_release_date(release_date))


__all__ = ["PageFetcher", "parse_search_results", "resolve_identifier", "resolve_from_release_date"]

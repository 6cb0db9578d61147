"""Sequential resolve + fetch + extract over a list of title requests.

One logical worker per batch: items are processed strictly in input order and
every network call passes through the fetch client's request spacing. An item
that cannot be resolved or fetched records ``None`` and the batch moves on.
The cache is persisted once when the batch ends, including early cancellation.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Iterable, Mapping, Optional, Union

from ..core.keys import K_EXTERNAL_ID, K_RELEASE_DATE, K_SECONDARY_ID, K_TITLE, K_YEAR
from .errors import FetchError
from .extractor import extract_guide
from .guide_cache import GuideCache
from .guide_utils import parse_year, year_from_release_date
from .models import Guide
from .resolver import PageFetcher, resolve_identifier

logger = logging.getLogger(__name__)

RequestKey = Union[int, str]


@dataclass(frozen=True)
class BatchRequest:
    title: str = ""
    year: Optional[int] = None
    external_id: Optional[str] = None
    secondary_id: Optional[int] = None
    release_date: Optional[str] = None

    @property
    def search_year(self) -> Optional[int]:
        return self.year if self.year is not None else year_from_release_date(self.release_date)

    @property
    def key(self) -> RequestKey:
        if self.secondary_id is not None:
            return self.secondary_id
        if self.external_id:
            return self.external_id
        return f"{self.title}|{self.search_year if self.search_year else 'None'}"

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "BatchRequest":
        secondary = raw.get(K_SECONDARY_ID, raw.get("secondary_id"))
        return cls(
            title=str(raw.get(K_TITLE) or "").strip(),
            year=parse_year(raw.get(K_YEAR)),
            external_id=(str(raw.get(K_EXTERNAL_ID) or raw.get("external_id") or "").strip() or None),
            secondary_id=int(secondary) if secondary not in (None, "") else None,
            release_date=raw.get(K_RELEASE_DATE) or raw.get("release_date"),
        )


class CancellationToken:
    """Cooperative cancellation checked between batch items."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


async def fetch_guide(client: PageFetcher, external_id: str) -> Guide:
    """Fetch and extract one guide page; raises FetchError when the page is unreachable."""

    document = await client.fetch(client.config.guide_url(external_id))
    return extract_guide(document, external_id)


async def fetch_fresh_guide(
    client: PageFetcher,
    cache: GuideCache,
    external_id: str,
    *,
    secondary_id: Optional[int] = None,
    max_age: Optional[timedelta] = None,
    store: bool = True,
) -> Optional[Guide]:
    """Cache-first lookup under the identifier's lock; None when the page cannot be fetched."""

    async with cache.lock_for(external_id):
        cached = cache.get_fresh(external_id, max_age)
        if cached is not None:
            return cached.with_secondary_id(secondary_id)
        try:
            guide = await fetch_guide(client, external_id)
        except FetchError as exc:
            logger.error("could not fetch guide for %s: %s", external_id, exc)
            return None
        except Exception:
            logger.exception("guide extraction failed for %s", external_id)
            return None
        guide = guide.with_secondary_id(secondary_id)
        if store:
            guide = cache.put(external_id, guide)
        return guide


async def resolve_and_fetch_all(
    requests: Iterable[BatchRequest],
    *,
    client: PageFetcher,
    cache: GuideCache,
    cancel: Optional[CancellationToken] = None,
    max_age: Optional[timedelta] = None,
) -> Dict[RequestKey, Optional[Guide]]:
    """Resolve and fetch guides for ``requests`` in order, tolerating per-item failures.

    Items not reached because of cancellation are absent from the result.
    """

    pending = list(requests)
    results: Dict[RequestKey, Optional[Guide]] = {}
    try:
        for index, request in enumerate(pending, start=1):
            if cancel is not None and cancel.cancelled:
                logger.warning("batch cancelled after %d/%d item(s)", index - 1, len(pending))
                break
            logger.info("Processing %d/%d: %s", index, len(pending), request.external_id or request.title)
            external_id = request.external_id
            if not external_id:
                external_id = await resolve_identifier(client, request.title, request.search_year)
            guide: Optional[Guide] = None
            if external_id:
                guide = await fetch_fresh_guide(
                    client,
                    cache,
                    external_id,
                    secondary_id=request.secondary_id,
                    max_age=max_age,
                )
            if request.key in results:
                logger.warning("duplicate batch key %r; item %d replaces an earlier result", request.key, index)
            results[request.key] = guide
    finally:
        cache.persist()
    found = sum(1 for guide in results.values() if guide is not None)
    logger.info("batch complete: %d/%d guide(s) available", found, len(pending))
    return results


__all__ = [
    "BatchRequest",
    "CancellationToken",
    "RequestKey",
    "fetch_guide",
    "fetch_fresh_guide",
    "resolve_and_fetch_all",
]

"""Operations exposed to embedding layers (CLI, request handlers).

``GuideService`` wires one fetch client and one guide cache together. All
operations are coroutines; :func:`run_in_guide_loop` runs them from sync code
on a single long-lived event loop so per-key cache locks stay on one loop.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .batch import BatchRequest, CancellationToken, RequestKey, fetch_fresh_guide, resolve_and_fetch_all
from .content_filter import filter_by_content, filter_catalog
from .fetch_client import FetchConfig, GuideFetchClient
from .guide_cache import GuideCache
from .guide_config import SHUTDOWN_TIMEOUT_SECONDS
from .guide_utils import env_float
from .models import ContentFilter, Guide
from .resolver import PageFetcher, resolve_identifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class GuidePolicy:
    shutdown_timeout: float = SHUTDOWN_TIMEOUT_SECONDS

    @classmethod
    def from_env(cls) -> "GuidePolicy":
        return cls(shutdown_timeout=max(0.1, env_float("GUIDEFETCH_SHUTDOWN_TIMEOUT", SHUTDOWN_TIMEOUT_SECONDS)))


class GuideService:
    def __init__(
        self,
        cache: GuideCache,
        client: Optional[PageFetcher] = None,
        policy: Optional[GuidePolicy] = None,
    ) -> None:
        self.cache = cache
        self.client = client if client is not None else GuideFetchClient(FetchConfig.from_env())
        self.policy = policy or GuidePolicy()

    @classmethod
    def from_env(cls) -> "GuideService":
        return cls(GuideCache.from_env(), GuideFetchClient(FetchConfig.from_env()), GuidePolicy.from_env())

    async def get_guide(self, external_id: str, *, store: bool = False) -> Optional[Guide]:
        """Cache-first guide lookup; fetched guides are cached only when ``store`` is set."""

        external_id = (external_id or "").strip()
        if not external_id:
            return None
        return await fetch_fresh_guide(self.client, self.cache, external_id, store=store)

    async def search_identifier(self, title: str, year: Optional[int] = None) -> Optional[str]:
        return await resolve_identifier(self.client, title, year)

    async def batch_get_guides(
        self,
        requests: Iterable[BatchRequest],
        cancel: Optional[CancellationToken] = None,
    ) -> Dict[RequestKey, Optional[Guide]]:
        return await resolve_and_fetch_all(requests, client=self.client, cache=self.cache, cancel=cancel)

    def filter_by_content(self, guides: Iterable[Guide], content_filter: ContentFilter) -> List[Guide]:
        return filter_by_content(guides, content_filter)

    def filter_catalog(self, entries: Iterable[Mapping[str, Any]], content_filter: ContentFilter) -> List[Dict[str, Any]]:
        return filter_catalog(entries, content_filter, self.cache)

    def cache_stats(self) -> Dict[str, Any]:
        return self.cache.stats()

    def clear_cache(self) -> bool:
        return self.cache.clear()

    def health(self) -> Dict[str, Any]:
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z"),
            "cache_size": len(self.cache),
        }

    async def close(self) -> None:
        close = getattr(self.client, "close", None)
        if close is not None:
            await close()

    async def shutdown(self) -> bool:
        """Close the client and flush the cache within the policy timeout."""

        await self.close()
        ok = await self.cache.shutdown(self.policy.shutdown_timeout)
        if not ok:
            logger.error("guide cache was not flushed cleanly on shutdown")
        return ok


def install_cancel_signals(cancel: CancellationToken, loop: asyncio.AbstractEventLoop) -> List[int]:
    """Route SIGINT/SIGTERM to ``cancel`` so a running batch stops between items."""

    installed: List[int] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, cancel.cancel)
        except (NotImplementedError, RuntimeError, ValueError):
            continue
        installed.append(sig)
    return installed


# ---------------- Single event loop helper for sync callers ------------------
_GUIDE_LOOP: asyncio.AbstractEventLoop | None = None


def guide_loop() -> asyncio.AbstractEventLoop:
    global _GUIDE_LOOP
    if _GUIDE_LOOP is None or _GUIDE_LOOP.is_closed():
        _GUIDE_LOOP = asyncio.new_event_loop()
    return _GUIDE_LOOP


def run_in_guide_loop(coro: "asyncio.coroutines.Coroutine"):
    return guide_loop().run_until_complete(coro)


__all__ = ["GuidePolicy", "GuideService", "install_cancel_signals", "run_in_guide_loop", "guide_loop"]

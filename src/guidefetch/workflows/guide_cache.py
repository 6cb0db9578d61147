"""Identifier-keyed guide cache mirrored to a JSON file.

The cache is the single source of truth for "is this guide fresh enough to skip
a network fetch". It owns the in-memory map and the durable copy; everything
else receives immutable :class:`Guide` values.

Durable layout is one JSON object mapping external id to a serialized guide,
loaded wholesale at start and rewritten wholesale (atomically) on persist.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from dataclasses import replace
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional

from .errors import StorageError
from .guide_config import CACHE_MAX_AGE_DAYS, CACHE_PATH
from .guide_utils import env_bool, env_int
from .models import CacheEntry, Guide, utc_now

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE = timedelta(days=CACHE_MAX_AGE_DAYS)


def resolve_cache_path() -> Optional[Path]:
    if env_bool("GUIDEFETCH_CACHE_DISABLE", "0"):
        return None
    env_path = os.getenv("GUIDEFETCH_CACHE_PATH")
    if env_path:
        return Path(env_path)
    return CACHE_PATH


def resolve_max_age() -> timedelta:
    return timedelta(days=max(0, env_int("GUIDEFETCH_MAX_AGE_DAYS", CACHE_MAX_AGE_DAYS)))


def is_stale(entry: CacheEntry, max_age: timedelta = DEFAULT_MAX_AGE, now: Optional[datetime] = None) -> bool:
    return ((now or utc_now()) - entry.last_updated) > max_age


def _atomic_write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        "w",
        encoding="utf-8",
        delete=False,
        dir=str(path.parent),
        prefix=path.name,
        suffix=".tmp",
    ) as tmp:
        tmp.write(text)
        tmp.flush()
        os.fsync(tmp.fileno())
        tmp_path = Path(tmp.name)
    try:
        os.replace(tmp_path, path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise


class GuideCache:
    """In-memory guide map with a durable JSON mirror and per-key locks."""

    def __init__(
        self,
        path: Optional[Path] = None,
        *,
        max_age: timedelta = DEFAULT_MAX_AGE,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.path = path
        self.max_age = max_age
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self.hits = 0
        self.misses = 0

    @classmethod
    def from_env(cls, *, load: bool = True) -> "GuideCache":
        cache = cls(resolve_cache_path(), max_age=resolve_max_age())
        if load:
            cache.load()
        return cache

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, external_id: object) -> bool:
        return external_id in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))

    def lock_for(self, external_id: str) -> asyncio.Lock:
        """Lock serializing check-fetch-store sequences for one identifier."""

        lock = self._locks.get(external_id)
        if lock is None:
            lock = self._locks[external_id] = asyncio.Lock()
        return lock

    def get(self, external_id: str) -> Optional[CacheEntry]:
        return self._entries.get(external_id)

    def put(self, external_id: str, guide: Guide) -> Guide:
        """Store ``guide`` under ``external_id`` stamped with the current time."""

        if guide.external_id != external_id:
            raise ValueError(f"guide for {guide.external_id} cannot be stored under {external_id}")
        stamped = replace(guide, last_updated=self._clock())
        self._entries[external_id] = CacheEntry(stamped)
        return stamped

    def is_stale(self, entry: CacheEntry, max_age: Optional[timedelta] = None, now: Optional[datetime] = None) -> bool:
        return is_stale(entry, self.max_age if max_age is None else max_age, now or self._clock())

    def get_fresh(self, external_id: str, max_age: Optional[timedelta] = None) -> Optional[Guide]:
        """Return the cached guide when present and not stale; counts hits/misses."""

        entry = self.get(external_id)
        if entry is None or self.is_stale(entry, max_age):
            self.misses += 1
            if entry is not None:
                logger.debug("cache entry for %s is stale (updated %s)", external_id, entry.last_updated)
            return None
        self.hits += 1
        return entry.guide

    def guides(self) -> Dict[str, Guide]:
        return {key: entry.guide for key, entry in self._entries.items()}

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        return {key: entry.guide.to_dict() for key, entry in self._entries.items()}

    def load(self) -> int:
        """Replace memory with the durable copy; a missing or corrupt file means empty."""

        self._entries = {}
        if self.path is None or not self.path.exists():
            return 0
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(raw, dict):
                raise StorageError(f"expected a JSON object in {self.path}")
        except (OSError, ValueError, StorageError) as exc:
            logger.warning("Could not load guide cache from %s: %s. Starting fresh.", self.path, exc)
            return 0
        skipped = 0
        for key, payload in raw.items():
            try:
                guide = Guide.from_dict(payload)
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                skipped += 1
                logger.debug("skipping malformed cache entry %s: %s", key, exc)
                continue
            self._entries[str(key)] = CacheEntry(guide)
        if skipped:
            logger.warning("Skipped %d malformed guide cache entries in %s", skipped, self.path)
        logger.info("Loaded guide cache with %d entries", len(self._entries))
        return len(self._entries)

    def persist(self) -> bool:
        """Atomically rewrite the durable copy; failures are logged, never raised."""

        if self.path is None:
            logger.debug("guide cache has no durable path; persist skipped")
            return True
        try:
            payload = json.dumps(self.snapshot(), ensure_ascii=False, indent=2)
            _atomic_write_text(self.path, payload)
        except (OSError, TypeError, ValueError) as exc:
            logger.error("Could not save guide cache to %s: %s", self.path, exc)
            return False
        logger.debug("Saved guide cache with %d entries", len(self._entries))
        return True

    async def shutdown(self, timeout: float) -> bool:
        """Persist with a bounded wait; returns False on failure or timeout."""

        try:
            return await asyncio.wait_for(asyncio.to_thread(self.persist), timeout=timeout)
        except asyncio.TimeoutError:
            logger.error("guide cache persist did not finish within %.1fs", timeout)
            return False

    def clear(self) -> bool:
        """Empty memory and remove the durable copy (a missing file is fine)."""

        self._entries.clear()
        self.hits = 0
        self.misses = 0
        if self.path is None:
            return True
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            logger.error("Could not remove guide cache %s: %s", self.path, exc)
            return False
        return True

    def stats(self) -> Dict[str, Any]:
        payload = json.dumps(self.snapshot(), ensure_ascii=False)
        total = self.hits + self.misses
        return {
            "count": len(self._entries),
            "approximate_bytes": len(payload.encode("utf-8")),
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": round(self.hits / total * 100, 1) if total else 0.0,
            "path": str(self.path) if self.path is not None else None,
        }


__all__ = [
    "DEFAULT_MAX_AGE",
    "GuideCache",
    "is_stale",
    "resolve_cache_path",
    "resolve_max_age",
]

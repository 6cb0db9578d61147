"""HTTP client for guide and search pages.

Every logical request goes through :meth:`GuideFetchClient.fetch`, which
enforces a minimum interval between requests and retries transport failures
and non-2xx responses with linearly increasing backoff. The interval is a
politeness contract toward the source; retries do not reset it.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Optional, Tuple
from urllib.parse import quote_plus

import aiohttp

from .errors import FetchError
from .guide_config import (
    BASE_URL,
    BROWSER_HEADERS,
    BROWSER_USER_AGENT,
    GUIDE_PATH_TEMPLATE,
    MAX_RETRIES,
    REQUEST_DELAY_MS,
    REQUEST_TIMEOUT_SECONDS,
    SEARCH_PATH,
)
from .guide_utils import env_float, env_int
from .html_normalize import decode_bytes_auto

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


@dataclass
class FetchConfig:
    """Configuration parameters for guide page fetching."""

    base_url: str = BASE_URL
    timeout: float = REQUEST_TIMEOUT_SECONDS
    max_retries: int = MAX_RETRIES
    retry_base_delay: float = REQUEST_DELAY_MS / 1000.0
    request_interval: float = REQUEST_DELAY_MS / 1000.0
    user_agent: str = BROWSER_USER_AGENT
    headers: Dict[str, str] = field(default_factory=lambda: dict(BROWSER_HEADERS))

    @classmethod
    def from_env(cls) -> "FetchConfig":
        delay_ms = max(0, env_int("GUIDEFETCH_REQUEST_DELAY_MS", REQUEST_DELAY_MS))
        retry_ms = max(0, env_int("GUIDEFETCH_RETRY_DELAY_MS", delay_ms))
        return cls(
            base_url=(os.getenv("GUIDEFETCH_BASE_URL") or BASE_URL).rstrip("/"),
            timeout=max(1.0, env_float("GUIDEFETCH_TIMEOUT", REQUEST_TIMEOUT_SECONDS)),
            max_retries=max(0, env_int("GUIDEFETCH_MAX_RETRIES", MAX_RETRIES)),
            retry_base_delay=retry_ms / 1000.0,
            request_interval=delay_ms / 1000.0,
        )

    def request_headers(self) -> Dict[str, str]:
        return {"User-Agent": self.user_agent, **self.headers}

    def guide_url(self, external_id: str) -> str:
        return self.base_url + GUIDE_PATH_TEMPLATE.format(external_id=external_id)

    def search_url(self, query: str) -> str:
        return f"{self.base_url}{SEARCH_PATH}?q={quote_plus(query)}&s=tt&ttype=ft"


class GuideFetchClient:
    """Async page fetcher with request spacing and bounded linear-backoff retries."""

    def __init__(
        self,
        config: Optional[FetchConfig] = None,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[SleepFunc] = None,
    ) -> None:
        self.config = config or FetchConfig()
        self._session = session
        self._owns_session = session is None
        self._clock = clock
        self._sleep: SleepFunc = sleep or asyncio.sleep
        self._request_lock = asyncio.Lock()
        self._last_request_at: Optional[float] = None
        self.requests_made = 0
        self.attempts_made = 0

    async def __aenter__(self) -> "GuideFetchClient":
        await self._ensure_session()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=self.config.request_headers())
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def fetch(self, url: str) -> str:
        """Fetch one page as text, raising FetchError once retries are exhausted."""

        async with self._request_lock:
            await self._wait_for_slot()
            self.requests_made += 1
            try:
                return await self._fetch_with_retries(url)
            finally:
                self._last_request_at = self._clock()

    async def fetch_guide_page(self, external_id: str) -> str:
        return await self.fetch(self.config.guide_url(external_id))

    async def _wait_for_slot(self) -> None:
        interval = self.config.request_interval
        if self._last_request_at is None or interval <= 0:
            return
        remaining = interval - (self._clock() - self._last_request_at)
        if remaining > 0:
            logger.debug("throttling %.3fs before next request", remaining)
            await self._sleep(remaining)

    async def _fetch_with_retries(self, url: str) -> str:
        max_attempts = self.config.max_retries + 1
        last_exc: Optional[BaseException] = None
        last_status: Optional[int] = None
        for attempt in range(1, max_attempts + 1):
            self.attempts_made += 1
            try:
                status, text = await self._fetch_once(url)
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                last_exc, last_status = exc, None
                logger.warning("request failed for %s (attempt %d/%d): %s", url, attempt, max_attempts, exc)
            else:
                if 200 <= status < 300:
                    return text
                last_exc, last_status = None, status
                logger.warning("HTTP %d for %s (attempt %d/%d)", status, url, attempt, max_attempts)
            if attempt == max_attempts:
                break
            await self._sleep(self.config.retry_base_delay * attempt)
        reason = f"{type(last_exc).__name__}: {last_exc}" if last_exc else ""
        raise FetchError(url, max_attempts, status=last_status, reason=reason) from last_exc

    async def _fetch_once(self, url: str) -> Tuple[int, str]:
        session = await self._ensure_session()
        timeout = aiohttp.ClientTimeout(total=self.config.timeout)
        async with session.get(url, timeout=timeout) as resp:
            body = await resp.read()
            return resp.status, decode_bytes_auto(body, resp.headers)


__all__ = ["FetchConfig", "GuideFetchClient"]

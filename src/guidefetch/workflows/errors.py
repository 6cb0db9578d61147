"""Exception types shared by the guide workflows."""

from __future__ import annotations

from typing import Optional


class GuideFetchError(Exception):
    """Base class for guidefetch errors."""


class FetchError(GuideFetchError):
    """Raised when a URL could not be fetched after exhausting retries.

    The last underlying failure is chained as ``__cause__``.
    """

    def __init__(self, url: str, attempts: int, status: Optional[int] = None, reason: str = "") -> None:
        self.url = url
        self.attempts = attempts
        self.status = status
        self.reason = reason
        detail = f"HTTP {status}" if status is not None else (reason or "transport error")
        super().__init__(f"fetch failed after {attempts} attempt(s): {url} ({detail})")


class StorageError(GuideFetchError):
    """Durable cache read/write failure."""


__all__ = ["GuideFetchError", "FetchError", "StorageError"]

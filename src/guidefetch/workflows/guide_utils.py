"""Shared helper functions used by the guide workflows."""

from __future__ import annotations

import os
import re
from datetime import date
from typing import Optional

_YEAR_RE = re.compile(r"^\s*(\d{4})")


def env_int(name: str, default: int = 0) -> int:
    try:
        raw = os.getenv(name, "")
        return int(raw) if raw.strip() else default
    except (TypeError, ValueError):
        return default


def env_float(name: str, default: float = 0.0) -> float:
    try:
        raw = os.getenv(name, "")
        return float(raw) if raw.strip() else default
    except (TypeError, ValueError):
        return default


def env_bool(name: str, default: str = "0") -> bool:
    raw = os.getenv(name, default)
    return str(raw).strip().lower() not in {"0", "false", "no", "off", ""}


def parse_year(value: object) -> Optional[int]:
    """Coerce a year given as int or text ("2020", " 2020 ") to int; None when absent."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    text = str(value).strip()
    if not text.isdigit():
        return None
    year = int(text)
    return year if year > 0 else None


def year_from_release_date(release_date: Optional[str]) -> Optional[int]:
    """Return the year of an ISO ``YYYY-MM-DD`` release date; None when unparseable."""

    raw = (release_date or "").strip()
    if not raw:
        return None
    try:
        return date.fromisoformat(raw[:10]).year
    except ValueError:
        pass
    match = _YEAR_RE.match(raw)
    if match and len(raw) == 4:
        return int(match.group(1))
    return None


def build_search_query(title: str, year: Optional[int] = None) -> str:
    title = " ".join((title or "").split())
    return f"{title} {year}" if year else title


def sanity_check() -> None:
    assert parse_year("2020") == 2020
    assert parse_year("") is None
    assert year_from_release_date("1999-03-31") == 1999
    assert year_from_release_date("not a date") is None
    assert build_search_query("  The   Matrix ", 1999) == "The Matrix 1999"


sanity_check()

__all__ = [
    "env_int",
    "env_float",
    "env_bool",
    "parse_year",
    "year_from_release_date",
    "build_search_query",
    "sanity_check",
]

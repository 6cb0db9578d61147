from __future__ import annotations

import json
import re
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, TextIO

from .workflows.batch import BatchRequest, RequestKey
from .workflows.guide_utils import parse_year
from .workflows.models import Guide

_EXTERNAL_ID_RE = re.compile(r"^tt\d+$")


def parse_manifest_line(line: str) -> BatchRequest:
    """Parse one manifest line.

    Accepted forms: ``tt0133093``, ``The Matrix | 1999``, ``The Matrix`` or a
    JSON object such as ``{"title": "The Matrix", "year": 1999, "tmdbId": 603}``.
    """

    text = line.strip()
    if text.startswith("{"):
        payload = json.loads(text)
        if not isinstance(payload, dict):
            raise ValueError(f"Invalid manifest line (expected object): {text}")
        return BatchRequest.from_mapping(payload)
    if _EXTERNAL_ID_RE.match(text):
        return BatchRequest(external_id=text)
    title, sep, year_text = text.rpartition("|")
    if not sep:
        return BatchRequest(title=text)
    year = parse_year(year_text)
    if year is None:
        raise ValueError(f"Invalid manifest line (bad year): {text}")
    if not title.strip():
        raise ValueError(f"Invalid manifest line (missing title): {text}")
    return BatchRequest(title=title.strip(), year=year)


def parse_manifest_lines(lines: Iterable[str]) -> List[BatchRequest]:
    requests: List[BatchRequest] = []
    for raw_line in lines:
        line = raw_line.strip()
        if not line:
            continue
        if line.startswith("#"):
            continue
        requests.append(parse_manifest_line(line))
    return requests


def load_manifest(path_or_dash: str, *, stdin: Optional[TextIO] = None) -> List[BatchRequest]:
    if path_or_dash == "-":
        stream = stdin or sys.stdin
        return parse_manifest_lines(stream.read().splitlines())
    path = Path(path_or_dash)
    if not path.exists():
        raise FileNotFoundError(f"Manifest not found: {path}")
    return parse_manifest_lines(path.read_text(encoding="utf-8").splitlines())


def summarize_batch(results: Mapping[RequestKey, Optional[Guide]]) -> Dict[str, Any]:
    items = {str(key): (guide.to_dict() if guide is not None else None) for key, guide in results.items()}
    found = sum(1 for guide in results.values() if guide is not None)
    return {
        "counts": {
            "total": len(results),
            "found": found,
            "missing": len(results) - found,
            "no_data": sum(1 for guide in results.values() if guide is not None and not guide.data_available),
        },
        "items": items,
    }


__all__ = [
    "parse_manifest_line",
    "parse_manifest_lines",
    "load_manifest",
    "summarize_batch",
]

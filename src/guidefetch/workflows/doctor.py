"""Environment diagnostics for ``guidefetch doctor``."""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from .guide_cache import resolve_cache_path
from .guide_config import BASE_URL, REQUEST_DELAY_MS
from .guide_utils import env_int
from .models import format_timestamp, utc_now


@dataclass(frozen=True)
class DoctorCheck:
    name: str
    passed: bool
    detail: Optional[str] = None
    remedy: Optional[str] = None
    # "warn" checks flip the overall result; "info" checks are reported only
    level: str = "warn"

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["status"] = "ok" if payload.pop("passed") else "failed"
        if not self.remedy:
            payload.pop("remedy")
        return payload


def _parser_check() -> DoctorCheck:
    try:
        from bs4 import BeautifulSoup, FeatureNotFound

        BeautifulSoup("<p></p>", "lxml")
        passed = True
    except (ImportError, FeatureNotFound):
        passed = False
    return DoctorCheck(
        "lxml",
        passed,
        detail="HTML parser backend for guide extraction",
        remedy="Install lxml (pip install lxml).",
    )


def _nearest_existing(path: Path) -> Path:
    while not path.exists() and path != path.parent:
        path = path.parent
    return path


def _cache_checks(cache_path: Optional[Path]) -> List[DoctorCheck]:
    if cache_path is None:
        return [DoctorCheck("GUIDEFETCH_CACHE_DISABLE", True, detail="guide cache is memory-only", level="info")]
    target = cache_path if cache_path.exists() else _nearest_existing(cache_path.parent)
    checks = [
        DoctorCheck(
            "GUIDEFETCH_CACHE_PATH",
            os.access(target, os.W_OK),
            detail=str(cache_path),
            remedy="Create the cache directory or point GUIDEFETCH_CACHE_PATH at a writable location.",
        )
    ]
    if cache_path.exists():
        try:
            entries = json.loads(cache_path.read_text(encoding="utf-8"))
            readable = isinstance(entries, dict)
            detail = f"{len(entries)} cached guide(s)" if readable else "not a JSON object"
        except (OSError, ValueError) as exc:
            readable, detail = False, str(exc)
        checks.append(
            DoctorCheck(
                "cache file",
                readable,
                detail=detail,
                remedy="Run `guidefetch clear`; an unreadable cache is ignored and rebuilt.",
            )
        )
    return checks


def build_doctor_report(*, cache_path: Optional[Path] = None) -> Dict[str, Any]:
    checks: List[DoctorCheck] = [_parser_check()]
    checks.extend(_cache_checks(cache_path or resolve_cache_path()))
    checks.append(
        DoctorCheck(
            "GUIDEFETCH_BASE_URL",
            True,
            detail=os.getenv("GUIDEFETCH_BASE_URL") or f"default ({BASE_URL})",
            level="info",
        )
    )
    delay_ms = env_int("GUIDEFETCH_REQUEST_DELAY_MS", REQUEST_DELAY_MS)
    checks.append(
        DoctorCheck(
            "GUIDEFETCH_REQUEST_DELAY_MS",
            delay_ms >= REQUEST_DELAY_MS,
            detail=f"{delay_ms} ms between requests",
            remedy=f"Keep at least {REQUEST_DELAY_MS} ms between requests to avoid being blocked.",
        )
    )
    return {
        "generated_at": format_timestamp(utc_now().replace(microsecond=0)),
        "ok": all(check.passed for check in checks if check.level == "warn"),
        "checks": [check.to_dict() for check in checks],
    }


def format_doctor_report(report: Dict[str, Any]) -> str:
    lines = ["guidefetch doctor", f"Generated: {report.get('generated_at')}", ""]
    for check in report.get("checks", []):
        lines.append(f"- [{check.get('level', 'info')}] {check.get('name')}: {check.get('status')}")
        if check.get("detail"):
            lines.append(f"  detail: {check['detail']}")
        if check.get("remedy") and check.get("status") != "ok":
            lines.append(f"  remedy: {check['remedy']}")
    lines.append("")
    lines.append("Overall: " + ("ok" if report.get("ok") else "attention needed"))
    return "\n".join(lines) + "\n"


__all__ = ["DoctorCheck", "build_doctor_report", "format_doctor_report"]

from __future__ import annotations

import json
import logging
import os
import sys
from typing import Any, Dict, Optional

import typer

from .manifest import load_manifest, summarize_batch
from .workflows.batch import CancellationToken
from .workflows.content_filter import build_filter
from .workflows.doctor import build_doctor_report, format_doctor_report
from .workflows.models import FILTER_PRESETS, Guide
from .workflows.service import GuideService, guide_loop, install_cancel_signals, run_in_guide_loop

app = typer.Typer(no_args_is_help=True, add_completion=False, help="Parental guide fetcher and content filter.")


def _build_service() -> GuideService:
    return GuideService.from_env()


def _configure_logging(verbose: bool) -> None:
    level_name = "DEBUG" if verbose else os.getenv("GUIDEFETCH_LOG_LEVEL", "WARNING")
    level = getattr(logging, level_name.upper(), logging.WARNING)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _emit_json(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, ensure_ascii=False) + "\n")


def _format_guide(guide: Guide) -> str:
    lines = [f"{guide.external_id} (updated {guide.last_updated.isoformat()})"]
    if not guide.data_available:
        lines.append("  no parental guide data available")
        return "\n".join(lines)
    for record in guide.records():
        flag = " [certified]" if record.certified else ""
        lines.append(f"  {record.category.value}: {record.severity.label} ({len(record.items)} item(s)){flag}")
    return "\n".join(lines)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    _configure_logging(verbose)


@app.command("doctor")
def doctor_cmd() -> None:
    """Print environment and dependency diagnostics."""
    report = build_doctor_report()
    typer.echo(format_doctor_report(report))
    raise typer.Exit(code=0 if report.get("ok", True) else 2)


@app.command("guide")
def guide_cmd(
    external_id: str = typer.Argument(..., help="External identifier, e.g. tt0133093."),
    store: bool = typer.Option(False, "--store", help="Write a freshly fetched guide to the cache."),
    json_out: bool = typer.Option(False, "--json", help="Print the guide as JSON."),
) -> None:
    """Show the parental guide for one title (cache first)."""
    service = _build_service()
    try:
        guide = run_in_guide_loop(service.get_guide(external_id, store=store))
    finally:
        run_in_guide_loop(service.shutdown() if store else service.close())
    if guide is None:
        typer.echo(f"not found: {external_id}", err=True)
        raise typer.Exit(code=1)
    if json_out:
        _emit_json(guide.to_dict())
    else:
        typer.echo(_format_guide(guide))


@app.command("search")
def search_cmd(
    title: str = typer.Argument(..., help="Title to search for."),
    year: Optional[int] = typer.Option(None, "--year", help="Release year to narrow the search."),
) -> None:
    """Resolve a title (and optional year) to an external identifier."""
    service = _build_service()
    try:
        external_id = run_in_guide_loop(service.search_identifier(title, year))
    finally:
        run_in_guide_loop(service.close())
    if external_id is None:
        typer.echo(f"not found: {title}", err=True)
        raise typer.Exit(code=1)
    typer.echo(external_id)


@app.command("batch")
def batch_cmd(
    path_or_dash: str = typer.Argument(..., help="Path to manifest or '-' for stdin."),
    json_out: bool = typer.Option(False, "--json", help="Print the batch summary as JSON."),
    soft_fail: bool = typer.Option(False, "--soft-fail", help="Exit 0 even if some items are missing."),
) -> None:
    """Resolve and fetch guides for every manifest line, then persist the cache."""
    try:
        requests = load_manifest(path_or_dash)
    except (OSError, ValueError) as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=2)

    service = _build_service()
    cancel = CancellationToken()
    loop = guide_loop()
    installed = install_cancel_signals(cancel, loop)
    try:
        results = run_in_guide_loop(service.batch_get_guides(requests, cancel=cancel))
    except Exception as exc:
        typer.echo(f"fatal: {exc}", err=True)
        raise typer.Exit(code=3)
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)
        run_in_guide_loop(service.close())

    summary = summarize_batch(results)
    if json_out:
        _emit_json(summary)
    else:
        counts = summary["counts"]
        typer.echo(f"{counts['found']}/{counts['total']} guide(s) available ({counts['no_data']} without data)")
        for key, guide in results.items():
            typer.echo(f"- {key}: {guide.external_id if guide is not None else 'not found'}")
    missing = summary["counts"]["missing"] or cancel.cancelled
    raise typer.Exit(code=1 if missing and not soft_fail else 0)


@app.command("filter")
def filter_cmd(
    path_or_dash: str = typer.Argument(..., help="Manifest of external ids, or '-' for stdin."),
    preset: Optional[str] = typer.Option(None, "--preset", help=f"Start from a preset: {', '.join(FILTER_PRESETS)}."),
    violence: Optional[str] = typer.Option(None, "--violence", help="Maximum severity or 'any'."),
    nudity: Optional[str] = typer.Option(None, "--nudity", help="Maximum severity or 'any'."),
    profanity: Optional[str] = typer.Option(None, "--profanity", help="Maximum severity or 'any'."),
    substance_use: Optional[str] = typer.Option(None, "--substance-use", help="Maximum severity or 'any'."),
    frightening: Optional[str] = typer.Option(None, "--frightening", help="Maximum severity or 'any'."),
    json_out: bool = typer.Option(False, "--json", help="Print kept entries as JSON."),
) -> None:
    """Keep titles whose cached guide passes the filter; uncached titles are kept."""
    overrides: Dict[str, Optional[str]] = {
        "violence": violence,
        "nudity": nudity,
        "profanity": profanity,
        "substance-use": substance_use,
        "frightening-content": frightening,
    }
    try:
        content_filter = build_filter(preset, overrides)
        requests = load_manifest(path_or_dash)
    except (OSError, ValueError) as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=2)

    service = _build_service()
    entries = [{"title": request.title, "imdbId": request.external_id} for request in requests]
    kept = service.filter_catalog(entries, content_filter)
    run_in_guide_loop(service.close())
    if json_out:
        _emit_json({"filter": content_filter.to_dict(), "kept": kept})
        return
    for entry in kept:
        marker = "" if "parentalGuide" in entry else " (no cached guide)"
        typer.echo(f"{entry['imdbId'] or entry['title']}{marker}")


@app.command("stats")
def stats_cmd() -> None:
    """Print cache statistics as JSON."""
    service = _build_service()
    _emit_json({**service.cache_stats(), **service.health()})
    run_in_guide_loop(service.close())


@app.command("clear")
def clear_cmd() -> None:
    """Remove every cached guide, in memory and on disk."""
    service = _build_service()
    ok = service.clear_cache()
    run_in_guide_loop(service.close())
    typer.echo("Cache cleared successfully" if ok else "Cache could not be fully cleared")
    raise typer.Exit(code=0 if ok else 3)


if __name__ == "__main__":
    app()

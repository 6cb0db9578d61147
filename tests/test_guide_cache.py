import asyncio
import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from guidefetch.workflows.guide_cache import GuideCache, is_stale, resolve_cache_path
from guidefetch.workflows.models import CacheEntry, Category, CategoryRecord, Guide, Severity

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _guide(external_id: str = "tt0133093", **kwargs) -> Guide:
    return Guide(
        external_id=external_id,
        violence=CategoryRecord(Category.VIOLENCE, Severity.MODERATE, ("Gunfights.",)),
        **kwargs,
    )


def test_put_stamps_time_and_rejects_wrong_key(tmp_path: Path) -> None:
    cache = GuideCache(tmp_path / "cache.json", clock=lambda: NOW)

    stored = cache.put("tt0133093", _guide())

    assert stored.last_updated == NOW
    assert cache.get("tt0133093").guide == stored
    with pytest.raises(ValueError):
        cache.put("tt1", _guide())


def test_staleness_boundary() -> None:
    max_age = timedelta(days=7)
    entry = CacheEntry(_guide(last_updated=NOW - max_age))

    assert is_stale(entry, max_age, NOW) is False
    assert is_stale(entry, max_age, NOW + timedelta(seconds=1)) is True
    assert is_stale(entry, max_age, NOW - timedelta(seconds=1)) is False


def test_get_fresh_counts_hits_and_misses() -> None:
    clock = [NOW]
    cache = GuideCache(None, max_age=timedelta(days=7), clock=lambda: clock[0])
    cache.put("tt0133093", _guide())

    assert cache.get_fresh("tt0133093") is not None
    assert cache.get_fresh("tt404") is None
    clock[0] = NOW + timedelta(days=8)
    assert cache.get_fresh("tt0133093") is None

    stats = cache.stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 2
    assert stats["hit_rate"] == pytest.approx(33.3)


def test_persist_and_load_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "cache.json"
    cache = GuideCache(path, clock=lambda: NOW)
    stored = cache.put("tt0133093", _guide(secondary_id=603))

    assert cache.persist() is True
    assert sorted(p.name for p in path.parent.iterdir()) == ["cache.json"]

    reloaded = GuideCache(path)
    assert reloaded.load() == 1
    assert reloaded.get("tt0133093").guide == stored
    assert json.loads(path.read_text(encoding="utf-8"))["tt0133093"]["tmdbId"] == 603


def test_load_missing_or_corrupt_file_starts_empty(tmp_path: Path) -> None:
    path = tmp_path / "cache.json"
    cache = GuideCache(path)
    assert cache.load() == 0

    path.write_text("{not json", encoding="utf-8")
    assert cache.load() == 0
    assert len(cache) == 0

    path.write_text("[1, 2, 3]", encoding="utf-8")
    assert cache.load() == 0


def test_load_skips_malformed_entries(tmp_path: Path) -> None:
    path = tmp_path / "cache.json"
    good = _guide(last_updated=NOW).to_dict()
    path.write_text(json.dumps({"tt0133093": good, "tt1": {"imdbId": "tt1"}, "tt2": "junk"}), encoding="utf-8")

    cache = GuideCache(path)

    assert cache.load() == 1
    assert "tt0133093" in cache


def test_persist_failure_returns_false(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("file, not a directory", encoding="utf-8")
    cache = GuideCache(blocker / "cache.json")
    cache.put("tt0133093", _guide())

    assert cache.persist() is False


def test_clear_removes_file_and_tolerates_missing(tmp_path: Path) -> None:
    path = tmp_path / "cache.json"
    cache = GuideCache(path)
    cache.put("tt0133093", _guide())
    cache.persist()

    assert cache.clear() is True
    assert not path.exists()
    assert len(cache) == 0
    assert cache.clear() is True


def test_memory_only_cache() -> None:
    cache = GuideCache(None)
    cache.put("tt0133093", _guide())

    assert cache.persist() is True
    assert cache.stats()["path"] is None
    assert cache.stats()["count"] == 1
    assert cache.stats()["approximate_bytes"] > 0


def test_shutdown_persists(tmp_path: Path) -> None:
    path = tmp_path / "cache.json"
    cache = GuideCache(path)
    cache.put("tt0133093", _guide())

    assert asyncio.run(cache.shutdown(5.0)) is True
    assert path.exists()


def test_resolve_cache_path_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("GUIDEFETCH_CACHE_PATH", str(tmp_path / "custom.json"))
    monkeypatch.delenv("GUIDEFETCH_CACHE_DISABLE", raising=False)
    assert resolve_cache_path() == tmp_path / "custom.json"

    monkeypatch.setenv("GUIDEFETCH_CACHE_DISABLE", "1")
    assert resolve_cache_path() is None


def test_staleness_with_naive_timestamp() -> None:
    entry = CacheEntry(_guide(last_updated=NOW.replace(tzinfo=None) - timedelta(days=8)))

    assert is_stale(entry, timedelta(days=7), NOW) is True

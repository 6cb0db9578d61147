import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path

from guidefetch.workflows.batch import BatchRequest, CancellationToken, fetch_fresh_guide, resolve_and_fetch_all
from guidefetch.workflows.guide_cache import GuideCache
from guidefetch.workflows.models import Guide, Severity

from helpers import FakeClient, cards_html, guide_page, search_page

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


class _CountingCache(GuideCache):
    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.persist_calls = 0

    def persist(self) -> bool:
        self.persist_calls += 1
        return super().persist()


def _nudity_page() -> str:
    return guide_page(
        summary=[("Sex & Nudity", "Moderate")],
        sections={"nudity": cards_html(["A couple kisses.", "Brief rear nudity.", "Implied sex scene."])},
    )


def test_request_keys() -> None:
    assert BatchRequest(title="Heat", year=1995, secondary_id=949).key == 949
    assert BatchRequest(external_id="tt0113277").key == "tt0113277"
    assert BatchRequest(title="Heat", year=1995).key == "Heat|1995"
    assert BatchRequest(title="Heat").key == "Heat|None"
    assert BatchRequest(title="Heat", release_date="1995-12-15").key == "Heat|1995"


def test_request_from_mapping() -> None:
    request = BatchRequest.from_mapping({"title": " Heat ", "year": "1995", "tmdbId": "949"})

    assert request == BatchRequest(title="Heat", year=1995, secondary_id=949)


def test_batch_tolerates_partial_failure(tmp_path: Path) -> None:
    client = FakeClient()
    client.add_search("The Matrix 1999", search_page("tt0133093"))
    client.add_guide("tt0133093", _nudity_page())
    client.add_search("Missing Movie", "<html><body></body></html>")
    cache = _CountingCache(tmp_path / "cache.json")

    requests = [
        BatchRequest(title="The Matrix", year=1999, secondary_id=603),
        BatchRequest(title="Missing Movie"),
        BatchRequest(external_id="tt0000404"),
    ]
    results = asyncio.run(resolve_and_fetch_all(requests, client=client, cache=cache))

    assert list(results) == [603, "Missing Movie|None", "tt0000404"]
    assert results["Missing Movie|None"] is None
    assert results["tt0000404"] is None
    guide = results[603]
    assert guide.secondary_id == 603
    assert guide.nudity.severity is Severity.MODERATE
    assert len(guide.nudity.items) == 3
    assert cache.persist_calls == 1
    assert (tmp_path / "cache.json").exists()


def test_fresh_cache_entry_skips_network() -> None:
    client = FakeClient()
    cache = GuideCache(None, clock=lambda: NOW)
    cache.put("tt0133093", Guide(external_id="tt0133093"))

    guide = asyncio.run(fetch_fresh_guide(client, cache, "tt0133093", secondary_id=603))

    assert guide.secondary_id == 603
    assert client.calls == []


def test_stale_entry_is_refetched() -> None:
    clock = [NOW]
    client = FakeClient()
    client.add_guide("tt9999999", _nudity_page())
    cache = GuideCache(None, max_age=timedelta(days=7), clock=lambda: clock[0])
    cache.put("tt9999999", Guide(external_id="tt9999999"))
    clock[0] = NOW + timedelta(days=8)

    guide = asyncio.run(fetch_fresh_guide(client, cache, "tt9999999"))

    assert guide.nudity.severity is Severity.MODERATE
    assert guide.last_updated == clock[0]
    assert len(client.calls) == 1


def test_fetch_failure_keeps_cache_untouched() -> None:
    client = FakeClient()
    cache = GuideCache(None)

    assert asyncio.run(fetch_fresh_guide(client, cache, "tt0000404")) is None
    assert len(cache) == 0


def test_concurrent_lookups_fetch_once() -> None:
    client = FakeClient()
    client.add_guide("tt9999999", _nudity_page())
    cache = GuideCache(None)

    async def run():
        return await asyncio.gather(*(fetch_fresh_guide(client, cache, "tt9999999") for _ in range(3)))

    guides = asyncio.run(run())

    assert all(guide is not None for guide in guides)
    assert len(client.calls) == 1


def test_cancellation_stops_between_items(tmp_path: Path) -> None:
    cancel = CancellationToken()

    class CancellingClient(FakeClient):
        async def fetch(self, url: str) -> str:
            cancel.cancel()
            return await super().fetch(url)

    client = CancellingClient()
    client.add_guide("tt1", _nudity_page())
    client.add_guide("tt2", _nudity_page())
    cache = _CountingCache(tmp_path / "cache.json")

    requests = [BatchRequest(external_id="tt1"), BatchRequest(external_id="tt2")]
    results = asyncio.run(resolve_and_fetch_all(requests, client=client, cache=cache, cancel=cancel))

    assert list(results) == ["tt1"]
    assert cache.persist_calls == 1
    assert "tt1" in cache


def test_duplicate_request_keys_are_logged(tmp_path: Path, caplog) -> None:
    client = FakeClient()
    client.add_guide("tt1", _nudity_page())
    cache = GuideCache(tmp_path / "cache.json")
    requests = [
        BatchRequest(external_id="tt1", secondary_id=5),
        BatchRequest(external_id="tt0000404", secondary_id=5),
    ]

    with caplog.at_level("WARNING", logger="guidefetch.workflows.batch"):
        results = asyncio.run(resolve_and_fetch_all(requests, client=client, cache=cache))

    assert results == {5: None}
    assert "duplicate batch key 5" in caplog.text

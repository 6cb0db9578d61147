from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Tuple

from guidefetch.workflows.errors import FetchError
from guidefetch.workflows.fetch_client import FetchConfig

BASE = "https://guides.example"


def summary_html(entries: Iterable[Tuple[str, str]]) -> str:
    rows = []
    for label, severity in entries:
        rows.append(
            '<li data-testid="rating-item"><a href="#">{}</a>'
            '<div class="ipc-html-content-inner-div">{}</div></li>'.format(label, severity)
        )
    return "<ul>" + "".join(rows) + "</ul>"


def cards_html(texts: Iterable[str], *, votes: bool = True) -> str:
    cards = []
    for text in texts:
        vote = '<button class="severity-vote-button">Vote</button>' if votes else ""
        cards.append(
            '<div data-testid="item-id"><div data-testid="item-html">'
            '<div class="ipc-html-content-inner-div">{}</div></div>{}</div>'.format(text, vote)
        )
    return "".join(cards)


def guide_page(summary: Iterable[Tuple[str, str]] = (), sections: Optional[Dict[str, str]] = None) -> str:
    body = [summary_html(summary)]
    for slug, inner in (sections or {}).items():
        body.append('<section data-testid="sub-section-{}">{}</section>'.format(slug, inner))
    return "<html><body>" + "".join(body) + "</body></html>"


def search_page(*external_ids: str) -> str:
    rows = [
        '<li><a class="ipc-metadata-list-summary-item__t" href="/title/{}/?ref_=fn_al_tt_1">Title</a></li>'.format(i)
        for i in external_ids
    ]
    return "<html><body><ul>" + "".join(rows) + "</ul></body></html>"


class FakeClient:
    """Page fetcher serving canned documents; unknown URLs fail like an exhausted fetch."""

    def __init__(self, pages: Optional[Dict[str, str]] = None) -> None:
        self.config = FetchConfig(base_url=BASE, request_interval=0.0, retry_base_delay=0.0)
        self.pages: Dict[str, str] = dict(pages or {})
        self.calls: List[str] = []
        self.closed = False

    def add_guide(self, external_id: str, document: str) -> None:
        self.pages[self.config.guide_url(external_id)] = document

    def add_search(self, query: str, document: str) -> None:
        self.pages[self.config.search_url(query)] = document

    async def fetch(self, url: str) -> str:
        self.calls.append(url)
        if url not in self.pages:
            raise FetchError(url, 4, status=404)
        return self.pages[url]

    async def close(self) -> None:
        self.closed = True

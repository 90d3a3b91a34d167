from __future__ import annotations

from types import SimpleNamespace
from typing import Dict, Iterable, Tuple

import pytest

from feedreader.blobstore import MemoryStore
from feedreader.services.fetcher import FeedFetcher
from feedreader.services.ingest import FeedIngestor
from feedreader.services.store import ArticleStore


def rss_document(title: str, items: Iterable[Tuple[str, str, str]]) -> bytes:
    """Build an RSS 2.0 document from ``(title, link, pubDate)`` tuples."""

    body = "\n".join(
        f"""
        <item>
          <title>{item_title}</title>
          <description><![CDATA[<p>About {item_title}</p>]]></description>
          <link>{link}</link>
          <pubDate>{pub_date}</pubDate>
          <guid>{link}</guid>
        </item>"""
        for item_title, link, pub_date in items
    )
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>{title}</title>
    <link>http://mock/</link>
    {body}
  </channel>
</rss>""".encode("utf-8")


class DummyResponse:
    def __init__(self, content: bytes = b"", status_code: int = 200, reason: str = "OK") -> None:
        self.content = content
        self.status_code = status_code
        self.reason = reason

    @property
    def ok(self) -> bool:
        return self.status_code < 400


class FakeUpstream:
    """Serves canned responses keyed by URL, like a tiny feed server."""

    def __init__(self) -> None:
        self.responses: Dict[str, DummyResponse | Exception] = {}
        self.requested: list[str] = []

    def serve(self, url: str, content: bytes, status_code: int = 200) -> None:
        self.responses[url] = DummyResponse(content, status_code)

    def fail(self, url: str, exc: Exception) -> None:
        self.responses[url] = exc

    def get(self, url, timeout):
        self.requested.append(url)
        response = self.responses.get(url, DummyResponse(b"Not Found", 404, "Not Found"))
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def fetcher(upstream: FakeUpstream) -> FeedFetcher:
    fetcher = FeedFetcher(timeout=1)
    fetcher._session = SimpleNamespace(get=upstream.get)
    return fetcher


@pytest.fixture
def backend() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def store(backend: MemoryStore) -> ArticleStore:
    return ArticleStore(backend)


@pytest.fixture
def ingestor(store: ArticleStore, fetcher: FeedFetcher) -> FeedIngestor:
    return FeedIngestor(store, fetcher)

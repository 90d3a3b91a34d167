"""Fetch, parse, and merge feeds into the article store."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Callable, List
from urllib.parse import urlparse

from feedreader.errors import (
    DuplicateFeedError,
    FeedSourceError,
    NotFoundError,
    ValidationError,
)
from feedreader.models import AddFeedResult, Feed, ParsedFeed, RefreshResult
from feedreader.services.fetcher import FeedFetcher
from feedreader.services.parser import parse_feed
from feedreader.services.store import ArticleStore

__all__ = ["FeedIngestor", "validate_feed_url"]

logger = logging.getLogger(__name__)


def validate_feed_url(url: str | None) -> str:
    """Return ``url`` stripped, or raise :class:`ValidationError`."""

    if url is None or not str(url).strip():
        raise ValidationError("URL is required")

    candidate = str(url).strip()
    parsed = urlparse(candidate)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValidationError("Invalid URL")
    return candidate


class FeedIngestor:
    """Run the fetch → parse → diff → persist cycle for one or all feeds.

    Refreshes are sequential.  A fetch or parse failure on one feed is recorded
    against that feed and does not stop the others; storage failures propagate.
    """

    def __init__(
        self,
        store: ArticleStore,
        fetcher: FeedFetcher,
        *,
        parser: Callable[[bytes], ParsedFeed] = parse_feed,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.fetcher = fetcher
        self._parse = parser
        self._clock = clock or (lambda: datetime.now(UTC))

    def _download(self, url: str) -> ParsedFeed:
        raw = self.fetcher.fetch(url)
        return self._parse(raw)

    def add_feed(self, url: str | None, name: str | None = None) -> AddFeedResult:
        """Subscribe to ``url`` after checking it can be fetched and parsed.

        A feed that parses to zero items is still accepted.
        """

        url = validate_feed_url(url)
        if self.store.find_feed_by_url(url) is not None:
            raise DuplicateFeedError("Feed already exists")

        parsed = self._download(url)
        now = self._clock()

        location = urlparse(url)
        host = location.hostname or location.netloc
        display_name = (name or "").strip() or parsed.title.strip() or host
        feed = self.store.add_feed(Feed(name=display_name, url=url, last_fetched=now))
        added = self.store.merge_articles(feed.id, parsed.items, now=now)

        logger.info("Added feed %s (%s) with %d articles", feed.name, feed.url, added)
        return AddFeedResult(feed=feed, articles_added=added)

    def refresh_feed(self, feed_id: str) -> int:
        """Refresh one feed and return the number of new articles.

        ``last_fetched`` moves forward whether or not the attempt succeeds; a
        failure is also kept in ``last_error`` and then re-raised.
        """

        feed = self.store.get_feed(feed_id)
        try:
            parsed = self._download(feed.url)
        except FeedSourceError as exc:
            self.store.update_feed_status(feed.id, self._clock(), error=str(exc))
            raise

        now = self._clock()
        added = self.store.merge_articles(feed.id, parsed.items, now=now)
        self.store.update_feed_status(feed.id, now)

        logger.info("Refreshed feed %s: %d new articles", feed.name, added)
        return added

    def refresh_all(self) -> List[RefreshResult]:
        """Refresh every registered feed in registration order."""

        results: List[RefreshResult] = []
        for feed in self.store.list_feeds():
            try:
                added = self.refresh_feed(feed.id)
            except (FeedSourceError, NotFoundError) as exc:
                logger.exception("Failed to refresh %s", feed.url)
                results.append(RefreshResult(feed_id=feed.id, name=feed.name, error=str(exc)))
                continue
            results.append(RefreshResult(feed_id=feed.id, name=feed.name, new_articles=added))
        return results

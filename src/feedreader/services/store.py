"""Persistence of feeds, articles, and flag sets on a key-value store."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any, Callable, Iterable, List, Optional, Set, Tuple, TypeVar

from pydantic import TypeAdapter
from pydantic import ValidationError as SchemaError

from feedreader.blobstore import KeyValueStore
from feedreader.errors import ConflictError, DuplicateFeedError, NotFoundError, StorageError
from feedreader.models import Article, ArticleView, Feed, FeedItem
from feedreader.services.parser import clean_html, parse_date

__all__ = [
    "ARTICLES_KEY",
    "ArticleStore",
    "FEEDS_KEY",
    "READ_KEY",
    "STARRED_KEY",
    "UNTITLED",
]

logger = logging.getLogger(__name__)

FEEDS_KEY = "feeds"
ARTICLES_KEY = "articles"
STARRED_KEY = "starred"
READ_KEY = "read"

UNTITLED = "Untitled"

_feeds_adapter = TypeAdapter(List[Feed])
_articles_adapter = TypeAdapter(List[Article])
_ids_adapter = TypeAdapter(List[str])

T = TypeVar("T")
R = TypeVar("R")


class ArticleStore:
    """Owner of the ``feeds``, ``articles``, ``starred`` and ``read`` collections.

    Each collection is one JSON array under its own key.  Every change reads the
    whole collection, applies the change in memory, and writes the whole
    collection back together with the version it was read at.  When another
    writer got there first the change is applied again to a fresh read, up to
    ``write_attempts`` times, after which :class:`ConflictError` propagates.

    Changes spanning several collections (such as :meth:`remove_feed`) are a
    sequence of single-key writes and are not atomic as a whole.
    """

    def __init__(
        self,
        backend: KeyValueStore,
        *,
        write_attempts: int = 3,
        validate_flag_ids: bool = False,
    ) -> None:
        self._backend = backend
        self._write_attempts = max(1, write_attempts)
        self._validate_flag_ids = validate_flag_ids

    # -- raw collection access -------------------------------------------------

    def _load(self, key: str, adapter: TypeAdapter) -> Tuple[Any, str]:
        stored = self._backend.get(key)
        if stored is None:
            return [], ""
        try:
            return adapter.validate_json(stored.data), stored.version
        except SchemaError as exc:
            raise StorageError(f"Stored collection '{key}' is corrupt: {exc}") from exc

    def _update(
        self,
        key: str,
        adapter: TypeAdapter,
        mutate: Callable[[T], Tuple[Optional[T], R]],
    ) -> R:
        """Apply ``mutate`` to the collection under ``key`` and persist the result.

        ``mutate`` receives the current value and returns ``(new_value, result)``;
        a ``new_value`` of ``None`` means nothing changed and skips the write.
        ``mutate`` may run more than once and must not have side effects.
        """

        for attempt in range(1, self._write_attempts + 1):
            current, version = self._load(key, adapter)
            new_value, result = mutate(current)
            if new_value is None:
                return result
            try:
                self._backend.put(key, adapter.dump_json(new_value, by_alias=True), version)
            except ConflictError:
                if attempt == self._write_attempts:
                    raise
                logger.info("Concurrent write on '%s', re-applying (attempt %d)", key, attempt + 1)
                continue
            return result
        raise AssertionError("unreachable")  # pragma: no cover

    # -- feeds -------------------------------------------------------------------

    def list_feeds(self) -> List[Feed]:
        """Return registered feeds in registration order."""

        feeds, _ = self._load(FEEDS_KEY, _feeds_adapter)
        return feeds

    def get_feed(self, feed_id: str) -> Feed:
        for feed in self.list_feeds():
            if feed.id == feed_id:
                return feed
        raise NotFoundError("Feed not found")

    def find_feed_by_url(self, url: str) -> Feed | None:
        return next((feed for feed in self.list_feeds() if feed.url == url), None)

    def add_feed(self, feed: Feed) -> Feed:
        """Register ``feed``; URLs must be unique (exact match)."""

        def mutate(feeds: List[Feed]):
            if any(existing.url == feed.url for existing in feeds):
                raise DuplicateFeedError("Feed already exists")
            return [*feeds, feed], feed

        return self._update(FEEDS_KEY, _feeds_adapter, mutate)

    def update_feed_status(
        self, feed_id: str, last_fetched: datetime, error: str | None = None
    ) -> Feed:
        """Record a refresh attempt on the feed."""

        def mutate(feeds: List[Feed]):
            for index, feed in enumerate(feeds):
                if feed.id == feed_id:
                    updated = feed.model_copy(
                        update={"last_fetched": last_fetched, "last_error": error}
                    )
                    return [*feeds[:index], updated, *feeds[index + 1 :]], updated
            raise NotFoundError("Feed not found")

        return self._update(FEEDS_KEY, _feeds_adapter, mutate)

    def remove_feed(self, feed_id: str) -> None:
        """Delete a feed together with its articles and their flags.

        Articles go first and the feed record last, so an interrupted delete
        leaves a feed that can still be refreshed or deleted again rather than
        orphaned articles.
        """

        self.get_feed(feed_id)

        def drop_articles(articles: List[Article]):
            kept = [article for article in articles if article.feed_id != feed_id]
            removed = {article.id for article in articles if article.feed_id == feed_id}
            return (kept if removed else None), removed

        removed_ids = self._update(ARTICLES_KEY, _articles_adapter, drop_articles)

        if removed_ids:
            for key in (STARRED_KEY, READ_KEY):
                self._prune_ids(key, removed_ids)

        def drop_feed(feeds: List[Feed]):
            kept = [feed for feed in feeds if feed.id != feed_id]
            if len(kept) == len(feeds):
                raise NotFoundError("Feed not found")
            return kept, None

        self._update(FEEDS_KEY, _feeds_adapter, drop_feed)
        logger.info("Removed feed %s and %d articles", feed_id, len(removed_ids))

    # -- articles ----------------------------------------------------------------

    def all_articles(self) -> List[Article]:
        articles, _ = self._load(ARTICLES_KEY, _articles_adapter)
        return articles

    def merge_articles(
        self, feed_id: str, items: Iterable[FeedItem], now: datetime | None = None
    ) -> int:
        """Store the items whose link is new for this feed and return how many.

        Items without a link are skipped.  Links are compared exactly and only
        against articles of the same feed, so two feeds may share a link.
        """

        feed = self.get_feed(feed_id)
        items = list(items)
        ingested_at = now or datetime.now(UTC)

        def mutate(articles: List[Article]):
            seen = {article.link for article in articles if article.feed_id == feed_id}
            added: List[Article] = []
            for item in items:
                link = item.link.strip()
                if not link or link in seen:
                    continue
                seen.add(link)
                added.append(self._build_article(feed, item, link, ingested_at))
            if not added:
                return None, 0
            return [*articles, *added], len(added)

        return self._update(ARTICLES_KEY, _articles_adapter, mutate)

    @staticmethod
    def _build_article(feed: Feed, item: FeedItem, link: str, ingested_at: datetime) -> Article:
        return Article(
            feed_id=feed.id,
            title=clean_html(item.title) or UNTITLED,
            excerpt=clean_html(item.content or item.description),
            link=link,
            source=feed.name,
            source_url=feed.url,
            date=parse_date(item.pub_date, now=ingested_at),
        )

    def list_articles(
        self, feed_id: str | None = None, starred_only: bool = False
    ) -> List[ArticleView]:
        """Return matching articles, newest first, with their flag state."""

        starred = self.starred_ids()
        read = self.read_ids()

        views = [
            ArticleView(
                **article.model_dump(exclude={"read"}),
                read=article.read or article.id in read,
                starred=article.id in starred,
            )
            for article in self.all_articles()
            if (feed_id is None or article.feed_id == feed_id)
            and (not starred_only or article.id in starred)
        ]
        views.sort(key=lambda view: view.date, reverse=True)
        return views

    # -- flags -------------------------------------------------------------------

    def starred_ids(self) -> Set[str]:
        ids, _ = self._load(STARRED_KEY, _ids_adapter)
        return set(ids)

    def read_ids(self) -> Set[str]:
        ids, _ = self._load(READ_KEY, _ids_adapter)
        return set(ids)

    def toggle_star(self, article_id: str) -> bool:
        """Flip the starred flag and return the new state."""

        return self._toggle(STARRED_KEY, article_id)

    def toggle_read(self, article_id: str) -> bool:
        """Flip the read flag and return the new state."""

        return self._toggle(READ_KEY, article_id)

    def _toggle(self, key: str, article_id: str) -> bool:
        if self._validate_flag_ids and not any(
            article.id == article_id for article in self.all_articles()
        ):
            raise NotFoundError("Article not found")

        def mutate(ids: List[str]):
            if article_id in ids:
                return [value for value in ids if value != article_id], False
            return [*ids, article_id], True

        return self._update(key, _ids_adapter, mutate)

    def _prune_ids(self, key: str, removed: Set[str]) -> None:
        def mutate(ids: List[str]):
            kept = [value for value in ids if value not in removed]
            return (kept if len(kept) != len(ids) else None), None

        self._update(key, _ids_adapter, mutate)

from __future__ import annotations

import json
from datetime import UTC, datetime

import pytest

from feedreader.blobstore import MemoryStore
from feedreader.errors import ConflictError, DuplicateFeedError, NotFoundError, StorageError
from feedreader.models import Feed, FeedItem
from feedreader.services.store import ArticleStore, UNTITLED

NOW = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)


def make_items(*links: str) -> list[FeedItem]:
    return [
        FeedItem(title=f"Story {link}", description="<p>desc</p>", link=link)
        for link in links
    ]


def add_feed(store: ArticleStore, url: str = "http://mock/feeds/tech/rss", name: str = "Tech") -> Feed:
    return store.add_feed(Feed(name=name, url=url))


def test_add_feed_rejects_duplicate_url(store: ArticleStore) -> None:
    add_feed(store)

    with pytest.raises(DuplicateFeedError):
        add_feed(store, name="Other name")

    assert len(store.list_feeds()) == 1


def test_feed_urls_are_compared_case_sensitively(store: ArticleStore) -> None:
    add_feed(store, url="http://mock/Feed")
    add_feed(store, url="http://mock/feed")

    assert [feed.url for feed in store.list_feeds()] == ["http://mock/Feed", "http://mock/feed"]


def test_feeds_are_persisted_with_camel_case_keys(store: ArticleStore, backend: MemoryStore) -> None:
    feed = add_feed(store)
    store.update_feed_status(feed.id, NOW)

    payload = json.loads(backend.get("feeds").data)
    assert payload[0]["id"] == feed.id
    assert payload[0]["lastFetched"].startswith("2025-01-01T12:00:00")
    assert "last_fetched" not in payload[0]


def test_get_feed_unknown_id(store: ArticleStore) -> None:
    with pytest.raises(NotFoundError):
        store.get_feed("missing")


def test_merge_articles_adds_only_new_links(store: ArticleStore) -> None:
    feed = add_feed(store)

    assert store.merge_articles(feed.id, make_items("a", "b", "c"), now=NOW) == 3
    assert store.merge_articles(feed.id, make_items("a", "b", "c"), now=NOW) == 0
    assert store.merge_articles(feed.id, make_items("b", "d"), now=NOW) == 1

    assert sorted(article.link for article in store.all_articles()) == ["a", "b", "c", "d"]


def test_merge_articles_skips_empty_and_repeated_links(store: ArticleStore) -> None:
    feed = add_feed(store)
    items = make_items("x", "", "  ", "x")

    assert store.merge_articles(feed.id, items, now=NOW) == 1


def test_links_are_scoped_per_feed(store: ArticleStore) -> None:
    tech = add_feed(store)
    news = add_feed(store, url="http://mock/feeds/news/rss", name="News")

    assert store.merge_articles(tech.id, make_items("http://shared/1"), now=NOW) == 1
    assert store.merge_articles(news.id, make_items("http://shared/1"), now=NOW) == 1

    assert len(store.list_articles()) == 2


def test_merged_articles_are_normalised(store: ArticleStore) -> None:
    feed = add_feed(store)
    items = [
        FeedItem(
            title="<b>Bold</b> title",
            description="<p>Short</p>",
            content="<div>Long &amp; full</div>",
            link="http://mock/1",
            pub_date="Mon, 06 Sep 2021 16:45:00 GMT",
        ),
        FeedItem(title="", description="plain", link="http://mock/2", pub_date="whenever"),
    ]

    store.merge_articles(feed.id, items, now=NOW)
    first, second = store.list_articles()

    assert first.title == UNTITLED
    assert first.excerpt == "plain"
    assert first.date == NOW
    assert second.title == "Bold title"
    assert second.excerpt == "Long & full"
    assert second.date == datetime(2021, 9, 6, 16, 45, tzinfo=UTC)
    assert second.feed_id == feed.id
    assert second.source == "Tech"
    assert second.source_url == feed.url
    assert second.read is False
    assert second.starred is False


def test_merge_into_unknown_feed(store: ArticleStore) -> None:
    with pytest.raises(NotFoundError):
        store.merge_articles("missing", make_items("a"))


def test_list_articles_sorted_newest_first(store: ArticleStore) -> None:
    feed = add_feed(store)
    dates = ["2024-03-01T00:00:00Z", "2024-05-01T00:00:00Z", "2024-01-01T00:00:00Z", "2024-04-01T00:00:00Z"]
    items = [FeedItem(title=str(i), link=f"l{i}", pub_date=value) for i, value in enumerate(dates)]
    store.merge_articles(feed.id, items, now=NOW)

    listed = [article.date for article in store.list_articles()]

    assert listed == sorted(listed, reverse=True)
    assert [article.link for article in store.list_articles()] == ["l1", "l3", "l0", "l2"]


def test_list_articles_filters(store: ArticleStore) -> None:
    tech = add_feed(store)
    news = add_feed(store, url="http://mock/feeds/news/rss", name="News")
    store.merge_articles(tech.id, make_items("t1", "t2"), now=NOW)
    store.merge_articles(news.id, make_items("n1"), now=NOW)

    starred = next(a for a in store.all_articles() if a.link == "t2")
    store.toggle_star(starred.id)

    assert {a.link for a in store.list_articles(feed_id=tech.id)} == {"t1", "t2"}
    assert [a.link for a in store.list_articles(starred_only=True)] == ["t2"]
    assert store.list_articles(feed_id=news.id, starred_only=True) == []
    assert [a.starred for a in store.list_articles(feed_id=tech.id, starred_only=True)] == [True]


def test_read_state_comes_from_read_ids(store: ArticleStore) -> None:
    feed = add_feed(store)
    store.merge_articles(feed.id, make_items("a"), now=NOW)
    article = store.all_articles()[0]

    assert store.toggle_read(article.id) is True
    assert store.list_articles()[0].read is True
    assert store.all_articles()[0].read is False


@pytest.mark.parametrize("toggle", ["toggle_star", "toggle_read"])
def test_toggles_are_involutions_for_any_id(store: ArticleStore, toggle: str) -> None:
    flip = getattr(store, toggle)

    assert flip("never-existed") is True
    assert flip("never-existed") is False
    assert flip("never-existed") is True


def test_toggles_can_validate_ids(backend: MemoryStore) -> None:
    store = ArticleStore(backend, validate_flag_ids=True)

    with pytest.raises(NotFoundError):
        store.toggle_star("ghost")

    feed = add_feed(store)
    store.merge_articles(feed.id, make_items("a"), now=NOW)
    assert store.toggle_star(store.all_articles()[0].id) is True


def test_remove_feed_cascades_to_articles_and_flags(store: ArticleStore) -> None:
    doomed = add_feed(store)
    kept = add_feed(store, url="http://mock/feeds/news/rss", name="News")
    store.merge_articles(doomed.id, make_items("d1", "d2"), now=NOW)
    store.merge_articles(kept.id, make_items("k1"), now=NOW)

    doomed_ids = {a.id for a in store.all_articles() if a.feed_id == doomed.id}
    kept_id = next(a.id for a in store.all_articles() if a.feed_id == kept.id)
    for article_id in [*doomed_ids, kept_id]:
        store.toggle_star(article_id)
        store.toggle_read(article_id)

    store.remove_feed(doomed.id)

    assert [feed.id for feed in store.list_feeds()] == [kept.id]
    assert all(article.feed_id == kept.id for article in store.all_articles())
    assert store.starred_ids() == {kept_id}
    assert store.read_ids() == {kept_id}
    assert not doomed_ids & (store.starred_ids() | store.read_ids())


def test_remove_unknown_feed(store: ArticleStore) -> None:
    add_feed(store)

    with pytest.raises(NotFoundError):
        store.remove_feed("missing")

    assert len(store.list_feeds()) == 1


def test_update_feed_status_records_error(store: ArticleStore) -> None:
    feed = add_feed(store)

    failed = store.update_feed_status(feed.id, NOW, error="HTTP 500: Server Error")
    assert failed.last_error == "HTTP 500: Server Error"

    recovered = store.update_feed_status(feed.id, NOW)
    assert recovered.last_error is None
    assert store.get_feed(feed.id).last_fetched == NOW


class RacingStore(MemoryStore):
    """Lets another writer sneak in before the next ``put`` on ``key``."""

    def __init__(self, key: str, intruder: bytes, races: int = 1) -> None:
        super().__init__()
        self.key = key
        self.intruder = intruder
        self.races = races

    def put(self, key, data, expected_version=None):
        if key == self.key and self.races and expected_version is not None:
            self.races -= 1
            super().put(key, self.intruder)
        return super().put(key, data, expected_version)


def test_concurrent_write_is_reapplied_not_lost() -> None:
    backend = RacingStore("starred", b'["from-other-writer"]')
    store = ArticleStore(backend)

    assert store.toggle_star("mine") is True
    assert store.starred_ids() == {"from-other-writer", "mine"}


def test_conflict_surfaces_after_write_attempts() -> None:
    backend = RacingStore("starred", b'["other"]', races=5)
    store = ArticleStore(backend, write_attempts=2)

    with pytest.raises(ConflictError):
        store.toggle_star("mine")


def test_corrupt_collection_is_a_storage_error(backend: MemoryStore) -> None:
    backend.put("feeds", b'{"not": "a list"}')
    store = ArticleStore(backend)

    with pytest.raises(StorageError):
        store.list_feeds()

"""Service layer entry points for Feed Reader."""

from __future__ import annotations

from feedreader.blobstore import FileStore, KeyValueStore, MemoryStore
from feedreader.config import AppConfig

from .fetcher import FeedFetcher  # noqa: F401
from .flags import FlagService  # noqa: F401
from .ingest import FeedIngestor  # noqa: F401
from .parser import clean_html, parse_date, parse_feed  # noqa: F401
from .store import ArticleStore  # noqa: F401

__all__ = [
    "ArticleStore",
    "FeedFetcher",
    "FeedIngestor",
    "FlagService",
    "build_backend",
    "build_services",
    "clean_html",
    "parse_date",
    "parse_feed",
]


def build_backend(config: AppConfig) -> KeyValueStore:
    """Return the key-value backend selected by ``config.storage``."""

    if config.storage == "memory":
        return MemoryStore()
    return FileStore(config.blob_root)


def build_services(
    config: AppConfig,
    backend: KeyValueStore | None = None,
    fetcher: FeedFetcher | None = None,
) -> tuple[ArticleStore, FeedIngestor, FlagService]:
    """Wire the store, ingestor, and flag service from ``config``."""

    store = ArticleStore(
        backend if backend is not None else build_backend(config),
        write_attempts=config.write_attempts,
        validate_flag_ids=config.validate_flag_ids,
    )
    fetcher = fetcher or FeedFetcher(user_agent=config.user_agent, timeout=config.request_timeout)
    return store, FeedIngestor(store, fetcher), FlagService(store)

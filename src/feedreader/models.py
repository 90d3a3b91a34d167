"""Domain models used across the application."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def new_id() -> str:
    """Return a fresh identifier for a feed or an article."""

    return uuid.uuid4().hex


class CamelModel(BaseModel):
    """Base model serialised with camelCase keys, as stored and served."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class Feed(CamelModel):
    """A subscribed RSS or Atom source."""

    id: str = Field(default_factory=new_id)
    name: str
    url: str
    last_fetched: Optional[datetime] = None
    last_error: Optional[str] = None


class Article(CamelModel):
    """One normalised item originating from a :class:`Feed`."""

    id: str = Field(default_factory=new_id)
    feed_id: str
    title: str
    excerpt: str = ""
    link: str
    source: str = ""
    source_url: str = ""
    date: datetime
    read: bool = False


class ArticleView(Article):
    """An :class:`Article` annotated with its current flag state."""

    starred: bool = False


class FeedItem(BaseModel):
    """A single entry extracted from a feed document, before storage."""

    title: str = ""
    description: str = ""
    content: str = ""
    link: str = ""
    pub_date: str = ""


class ParsedFeed(BaseModel):
    """Result of parsing a feed document."""

    title: str = ""
    items: List[FeedItem] = Field(default_factory=list)


class AddFeedResult(CamelModel):
    """Outcome of subscribing to a feed."""

    feed: Feed
    articles_added: int


class RefreshResult(CamelModel):
    """Per-feed outcome of a bulk refresh.

    Exactly one of ``new_articles`` and ``error`` is set.
    """

    feed_id: str
    name: str
    new_articles: Optional[int] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class StarState(CamelModel):
    article_id: str
    starred: bool


class ReadState(CamelModel):
    article_id: str
    read: bool

"""Star and read toggles."""

from __future__ import annotations

from feedreader.models import ReadState, StarState
from feedreader.services.store import ArticleStore

__all__ = ["FlagService"]


class FlagService:
    def __init__(self, store: ArticleStore) -> None:
        self.store = store

    def toggle_star(self, article_id: str) -> StarState:
        return StarState(article_id=article_id, starred=self.store.toggle_star(article_id))

    def toggle_read(self, article_id: str) -> ReadState:
        return ReadState(article_id=article_id, read=self.store.toggle_read(article_id))

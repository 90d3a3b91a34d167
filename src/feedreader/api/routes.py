"""API routes exposing feed management, refresh, and article flags."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import List

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field

from feedreader.errors import FeedSourceError
from feedreader.services import ArticleStore, FeedIngestor, FlagService

logger = logging.getLogger(__name__)

router = APIRouter()

API_VERSION = "1.0.0"

ENDPOINTS = [
    "GET /api/health",
    "GET /api/feeds",
    "POST /api/feeds",
    "DELETE /api/feeds/:id",
    "POST /api/feeds/:id/refresh",
    "POST /api/refresh",
    "GET /api/articles",
    "POST /api/articles/:id/star",
    "POST /api/articles/:id/read",
]


class AddFeedRequest(BaseModel):
    url: str | None = None
    name: str | None = None


class ApiInfoResponse(BaseModel):
    message: str
    version: str
    endpoints: List[str] = Field(default_factory=list)


def get_store(request: Request) -> ArticleStore:
    return request.app.state.store


def get_ingestor(request: Request) -> FeedIngestor:
    return request.app.state.ingestor


def get_flags(request: Request) -> FlagService:
    return request.app.state.flags


@router.get("/", response_model=ApiInfoResponse)
async def api_info() -> ApiInfoResponse:
    return ApiInfoResponse(message="RSS Reader API", version=API_VERSION, endpoints=ENDPOINTS)


@router.get("/health")
async def health() -> dict:
    return {"status": "ok", "timestamp": datetime.now(UTC).isoformat()}


@router.get("/feeds")
async def list_feeds(store: ArticleStore = Depends(get_store)) -> dict:
    """Return every registered feed in registration order."""

    feeds = await run_in_threadpool(store.list_feeds)
    return {"feeds": [feed.to_json() for feed in feeds]}


@router.post("/feeds", status_code=201)
async def add_feed(
    payload: AddFeedRequest | None = Body(default=None),
    ingestor: FeedIngestor = Depends(get_ingestor),
) -> dict:
    """Subscribe to a feed and ingest its current items."""

    request_payload = payload or AddFeedRequest()
    try:
        result = await run_in_threadpool(
            ingestor.add_feed, request_payload.url, request_payload.name
        )
    except FeedSourceError as exc:
        logger.warning("Rejected feed %s: %s", request_payload.url, exc)
        raise HTTPException(status_code=400, detail=f"Failed to fetch feed: {exc}") from exc
    return result.to_json()


@router.delete("/feeds/{feed_id}")
async def remove_feed(feed_id: str, store: ArticleStore = Depends(get_store)) -> dict:
    await run_in_threadpool(store.remove_feed, feed_id)
    return {"success": True}


@router.post("/feeds/{feed_id}/refresh")
async def refresh_feed(feed_id: str, ingestor: FeedIngestor = Depends(get_ingestor)) -> dict:
    """Refresh a single feed."""

    try:
        added = await run_in_threadpool(ingestor.refresh_feed, feed_id)
    except FeedSourceError as exc:
        logger.exception("Failed to refresh feed %s", feed_id)
        raise HTTPException(status_code=500, detail=f"Failed to refresh feed: {exc}") from exc
    return {"success": True, "newArticles": added}


@router.post("/refresh")
async def refresh_all(ingestor: FeedIngestor = Depends(get_ingestor)) -> dict:
    """Refresh every feed; failures are reported per feed."""

    results = await run_in_threadpool(ingestor.refresh_all)
    return {"results": [result.to_json() for result in results]}


@router.get("/articles")
async def list_articles(
    feed_id: str | None = Query(default=None, alias="feedId"),
    starred: bool = Query(default=False),
    store: ArticleStore = Depends(get_store),
) -> dict:
    """Return articles newest first, optionally limited to a feed or to starred ones."""

    articles = await run_in_threadpool(store.list_articles, feed_id or None, starred)
    return {"articles": [article.to_json() for article in articles]}


@router.post("/articles/{article_id}/star")
async def toggle_star(article_id: str, flags: FlagService = Depends(get_flags)) -> dict:
    state = await run_in_threadpool(flags.toggle_star, article_id)
    return state.to_json()


@router.post("/articles/{article_id}/read")
async def toggle_read(article_id: str, flags: FlagService = Depends(get_flags)) -> dict:
    state = await run_in_threadpool(flags.toggle_read, article_id)
    return state.to_json()

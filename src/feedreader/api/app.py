"""FastAPI application entrypoint."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from feedreader.api.routes import router
from feedreader.blobstore import KeyValueStore
from feedreader.config import AppConfig
from feedreader.errors import FeedReaderError
from feedreader.services import FeedFetcher, build_services

logger = logging.getLogger(__name__)


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def _feedreader_error_handler(request: Request, exc: FeedReaderError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return _error_response(exc.status_code, str(exc))


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error_response(exc.status_code, str(exc.detail))


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error_response(400, "Invalid request")


def create_app(
    config: AppConfig | None = None,
    *,
    backend: KeyValueStore | None = None,
    fetcher: FeedFetcher | None = None,
) -> FastAPI:
    config = config or AppConfig.load()
    store, ingestor, flags = build_services(config, backend=backend, fetcher=fetcher)

    app = FastAPI(title="Feed Reader", description="RSS and Atom feed reader API")
    app.state.config = config
    app.state.store = store
    app.state.ingestor = ingestor
    app.state.flags = flags

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type"],
    )
    app.add_exception_handler(FeedReaderError, _feedreader_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.include_router(router, prefix="/api")

    return app

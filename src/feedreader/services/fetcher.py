"""HTTP retrieval of feed documents."""

from __future__ import annotations

import logging

import requests

from feedreader.config import DEFAULT_USER_AGENT
from feedreader.errors import FetchError, NetworkError

__all__ = ["DEFAULT_HEADERS", "FeedFetcher"]

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": DEFAULT_USER_AGENT,
    "Accept": (
        "application/rss+xml, application/atom+xml, application/xml, "
        "text/xml;q=0.9, */*;q=0.8"
    ),
}


class FeedFetcher:
    """Download raw feed documents.

    Failures are split in two: :class:`~feedreader.errors.FetchError` when the
    server answered with a non-success status, and
    :class:`~feedreader.errors.NetworkError` when no usable answer arrived at
    all.  Nothing is retried here.
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        *,
        user_agent: str | None = None,
        timeout: float = 15.0,
    ) -> None:
        self._session = session or requests.Session()
        self._session.headers.update(DEFAULT_HEADERS)
        if user_agent:
            self._session.headers["User-Agent"] = user_agent
        self.timeout = timeout

    def fetch(self, url: str) -> bytes:
        """Return the body of ``url`` as bytes."""

        try:
            response = self._session.get(url, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.warning("Network failure fetching %s: %s", url, exc)
            raise NetworkError(f"Failed to fetch {url}: {exc}") from exc

        if not response.ok:
            reason = response.reason or "error"
            raise FetchError(response.status_code, f"HTTP {response.status_code}: {reason}")

        return response.content

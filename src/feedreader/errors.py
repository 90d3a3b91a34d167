"""Exception hierarchy shared by the services and the HTTP layer."""

from __future__ import annotations

__all__ = [
    "ConflictError",
    "DuplicateFeedError",
    "FeedReaderError",
    "FeedSourceError",
    "FetchError",
    "NetworkError",
    "NotFoundError",
    "ParseError",
    "StorageError",
    "ValidationError",
]


class FeedReaderError(Exception):
    """Base class for errors raised by the feed reader.

    ``status_code`` is the HTTP status the API reports when the error escapes a
    route handler unchanged.
    """

    status_code = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ValidationError(FeedReaderError):
    """Caller supplied input that cannot be used (missing or malformed URL)."""

    status_code = 400


class DuplicateFeedError(FeedReaderError):
    """A feed with the same URL is already registered."""

    status_code = 409


class NotFoundError(FeedReaderError):
    """No feed or article exists with the requested id."""

    status_code = 404


class FeedSourceError(FeedReaderError):
    """Problem with the remote feed itself: unreachable, rejected, or unreadable."""

    status_code = 502


class FetchError(FeedSourceError):
    """The remote server answered with a non-success HTTP status."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status


class NetworkError(FeedSourceError):
    """Transport level failure: DNS, TLS, connection refused, or timeout."""


class ParseError(FeedSourceError):
    """The response body does not contain any XML markup."""

    status_code = 422


class StorageError(FeedReaderError):
    """The persistence layer failed to complete an operation."""


class ConflictError(StorageError):
    """A versioned write lost the race against a concurrent writer."""

    def __init__(self, key: str, expected: str | None, actual: str | None) -> None:
        super().__init__(
            f"Version conflict on '{key}': expected {expected!r}, found {actual!r}"
        )
        self.key = key
        self.expected = expected
        self.actual = actual

"""Key-value storage used to persist feeds, articles, and flag sets."""

from __future__ import annotations

import hashlib
import os
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Protocol, Union

from feedreader.errors import ConflictError, StorageError

# ``feedreader/blobstore`` is part of the package so the storage lives alongside the
# code unless a different root is configured.
_PACKAGE_DIR = Path(__file__).resolve().parent

#: Name of the directory under :mod:`feedreader.blobstore` that contains the data.
DEFAULT_BLOB_SUBDIR = "data"

#: Default location where collections are stored.
DEFAULT_BLOB_ROOT = _PACKAGE_DIR / DEFAULT_BLOB_SUBDIR


_Pathish = Union[str, Path]


def resolve_blob_root(blob_root: _Pathish | None = None) -> Path:
    """Return a :class:`Path` pointing at the blob root.

    ``blob_root`` may be either a string or :class:`Path`.  When ``None`` is
    provided, :data:`DEFAULT_BLOB_ROOT` is returned.  The path is not created on
    disk; callers can use :func:`ensure_blob_root` if they need to create it.
    """

    if blob_root is None:
        return DEFAULT_BLOB_ROOT
    if isinstance(blob_root, Path):
        return blob_root
    return Path(blob_root)


def ensure_blob_root(blob_root: _Pathish | None = None) -> Path:
    """Ensure the blob root exists and return it as a :class:`Path`."""

    root = resolve_blob_root(blob_root)
    root.mkdir(parents=True, exist_ok=True)
    return root


def content_version(data: bytes) -> str:
    """Return the version token for ``data``."""

    return hashlib.sha1(data).hexdigest()


@dataclass(frozen=True)
class VersionedValue:
    """A stored value together with the version token it was read at."""

    data: bytes
    version: str


class KeyValueStore(Protocol):
    """Whole-value storage with optimistic version checks.

    ``put`` accepts an ``expected_version``: ``None`` writes unconditionally,
    ``""`` requires the key to be absent, and any other value must match the
    version currently stored or :class:`~feedreader.errors.ConflictError` is
    raised.
    """

    def get(self, key: str) -> VersionedValue | None:
        ...

    def put(self, key: str, data: bytes, expected_version: str | None = None) -> str:
        ...

    def delete(self, key: str) -> None:
        ...


def _check_version(key: str, current: str | None, expected: str | None) -> None:
    if expected is None:
        return
    if expected == "" and current is None:
        return
    if expected != current:
        raise ConflictError(key, expected, current)


class MemoryStore:
    """In-process :class:`KeyValueStore`, used by tests and ephemeral runs."""

    def __init__(self) -> None:
        self._values: Dict[str, VersionedValue] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> VersionedValue | None:
        with self._lock:
            return self._values.get(key)

    def put(self, key: str, data: bytes, expected_version: str | None = None) -> str:
        with self._lock:
            current = self._values.get(key)
            _check_version(key, current.version if current else None, expected_version)
            value = VersionedValue(data=bytes(data), version=content_version(data))
            self._values[key] = value
            return value.version

    def delete(self, key: str) -> None:
        with self._lock:
            self._values.pop(key, None)


class FileStore:
    """:class:`KeyValueStore` keeping one ``<key>.json`` file per key under a root.

    The version of a value is the SHA-1 of its bytes, so no extra metadata is
    written next to the data.  Writes go to a temporary file that is renamed over
    the target, and a lock serialises the compare-and-write inside one process.
    """

    def __init__(self, blob_root: _Pathish | None = None) -> None:
        self._root = ensure_blob_root(blob_root)
        self._lock = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root

    def _path(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key.startswith("."):
            raise StorageError(f"Invalid storage key: {key!r}")
        return self._root / f"{key}.json"

    def _read(self, path: Path) -> VersionedValue | None:
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageError(f"Failed to read {path}: {exc}") from exc
        return VersionedValue(data=data, version=content_version(data))

    def get(self, key: str) -> VersionedValue | None:
        return self._read(self._path(key))

    def put(self, key: str, data: bytes, expected_version: str | None = None) -> str:
        path = self._path(key)
        with self._lock:
            current = self._read(path)
            _check_version(key, current.version if current else None, expected_version)
            try:
                fd, tmp_name = tempfile.mkstemp(dir=self._root, prefix=f".{key}.", suffix=".tmp")
                with os.fdopen(fd, "wb") as file:
                    file.write(data)
                os.replace(tmp_name, path)
            except OSError as exc:
                raise StorageError(f"Failed to write {path}: {exc}") from exc
        return content_version(data)

    def delete(self, key: str) -> None:
        path = self._path(key)
        with self._lock:
            try:
                path.unlink()
            except FileNotFoundError:
                return
            except OSError as exc:
                raise StorageError(f"Failed to delete {path}: {exc}") from exc


__all__ = [
    "DEFAULT_BLOB_ROOT",
    "DEFAULT_BLOB_SUBDIR",
    "FileStore",
    "KeyValueStore",
    "MemoryStore",
    "VersionedValue",
    "content_version",
    "ensure_blob_root",
    "resolve_blob_root",
]

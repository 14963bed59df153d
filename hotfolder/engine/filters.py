"""Name/size filtering and collision helpers for the hot folder."""

import posixpath
import time

from hotfolder.schemas.hotfolder import FilterSettings
from hotfolder.store.base import NameCollisionError

# Substrings (lower-cased) that identify a destination-already-exists failure
COLLISION_MARKERS = (
    "status_object_name_collision",
    "name collision",
    "name_collision",
    "already exists",
    "eexist",
)


def matches(name: str, size: int, filters: FilterSettings) -> bool:
    """Return True if a file with this name and size should be processed."""
    return _name_ok(name, filters) and _size_ok(size, filters)


def _name_ok(name: str, filters: FilterSettings) -> bool:
    include = not filters.name_patterns or any(p.search(name) for p in filters.name_patterns)
    exclude = any(p.search(name) for p in filters.exclude_patterns)

    ext_ok = True
    if filters.extensions is not None:
        ext = posixpath.splitext(name)[1].lower()
        ext_ok = ext in filters.extensions

    return include and not exclude and ext_ok


def _size_ok(size: int, filters: FilterSettings) -> bool:
    if size < filters.min_size:
        return False
    return filters.max_size is None or size <= filters.max_size


def is_collision(reason: object) -> bool:
    """Check whether a failure reason means "destination name is taken".

    Accepts a :class:`NameCollisionError`, any other exception, or a plain
    reason string. Exceptions are inspected through their whole cause chain.
    """
    if reason is None:
        return False
    if isinstance(reason, BaseException):
        exc: BaseException | None = reason
        while exc is not None:
            if isinstance(exc, NameCollisionError) or _mentions_collision(str(exc)):
                return True
            exc = exc.__cause__
        return False
    return _mentions_collision(str(reason))


def _mentions_collision(text: str) -> bool:
    text = text.lower()
    return any(marker in text for marker in COLLISION_MARKERS)


def unique_variant(path: str, *, now_ms: int | None = None) -> str:
    """Insert ``-<epoch millis>`` before the extension of *path*.

    ``/success/hello.txt`` becomes ``/success/hello-1700000000000.txt``.
    """
    if now_ms is None:
        now_ms = time.time_ns() // 1_000_000
    directory, base = posixpath.split(path)
    stem, ext = posixpath.splitext(base)
    return posixpath.join(directory, f"{stem}-{now_ms}{ext}")

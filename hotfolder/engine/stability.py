"""File stability detection.

A file is stable when its size reads the same for ``checks`` consecutive
samples taken ``interval`` milliseconds apart. Anything that cannot be
stat'ed is never stable.
"""

import asyncio
import logging

from hotfolder.schemas.store import EntryType
from hotfolder.store.base import RemoteStore, StoreError

logger = logging.getLogger(__name__)


async def is_stable(store: RemoteStore, path: str, checks: int, interval_ms: int) -> bool:
    """Sample the size of *path* and report whether it stopped changing.

    Args:
        store: Store to stat through.
        path: Share path of the file.
        checks: Number of identical samples required (1 = single read, no wait).
        interval_ms: Pause between samples.

    Returns:
        True only if every sample succeeded and returned the same size.
    """
    size = await _size_of(store, path)
    if size is None:
        return False

    for _ in range(checks - 1):
        await asyncio.sleep(interval_ms / 1000)
        current = await _size_of(store, path)
        if current != size:
            logger.debug("Unstable: %s (size %s -> %s)", path, size, current)
            return False

    return True


async def _size_of(store: RemoteStore, path: str) -> int | None:
    try:
        st = await store.stat(path)
    except StoreError as exc:
        logger.debug("Stat failed for %s: %s", path, exc)
        return None
    if st.type != EntryType.FILE:
        return None
    return st.size

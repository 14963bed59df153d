"""Filesystem-backed store adapter.

Serves a local directory (or a mounted SMB/CIFS/NFS share) through the
:class:`~hotfolder.store.base.RemoteStore` contract. Blocking calls run in a
worker thread so the event loop stays responsive.
"""

import asyncio
import logging
import os
import posixpath
from pathlib import Path
from urllib.parse import unquote, urlparse

from hotfolder.schemas.store import EntryType, StoreEntry, StoreStat
from hotfolder.store.base import NameCollisionError, ObjectNotFoundError, StoreError

logger = logging.getLogger(__name__)


def root_from_url(url: str) -> Path:
    """Turn ``file:///srv/share`` or a plain path into a local root directory."""
    if url.startswith("file://"):
        return Path(unquote(urlparse(url).path))
    if "://" in url:
        raise StoreError(f"LocalStore cannot serve {url!r}; mount the share and pass its path")
    return Path(url)


class LocalStore:
    """Remote store implementation over a local root directory.

    Usage::

        store = LocalStore("/mnt/scans")
        await store.mkdir_p("/hotfolder/incoming")
        entries = await store.list_dir("/hotfolder/incoming")
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).resolve()

    @property
    def root(self) -> Path:
        return self._root

    def _local(self, path: str) -> Path:
        """Map a share path onto the local root.

        Normalizing against ``/`` first means ``..`` can never climb above it.
        """
        rel = posixpath.normpath("/" + path.replace("\\", "/").lstrip("/")).lstrip("/")
        return self._root / rel if rel else self._root

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    async def connect(
        self, url: str, username: str | None, password: str | None, pool_size: int
    ) -> None:
        # No pool to warm; just make sure the root is there.
        if not await asyncio.to_thread(self._root.is_dir):
            raise StoreError(f"Store root is not a directory: {self._root}")
        logger.debug("LocalStore ready at %s (pool_size=%d ignored)", self._root, pool_size)

    async def list_dir(self, path: str) -> list[StoreEntry]:
        return await asyncio.to_thread(self._list_dir, self._local(path))

    def _list_dir(self, local: Path) -> list[StoreEntry]:
        try:
            entries = []
            with os.scandir(local) as it:
                for item in it:
                    if item.is_dir(follow_symlinks=False):
                        entries.append(StoreEntry(name=item.name, type=EntryType.DIRECTORY))
                    else:
                        entries.append(
                            StoreEntry(
                                name=item.name,
                                type=EntryType.FILE,
                                size=item.stat(follow_symlinks=False).st_size,
                            )
                        )
            return entries
        except FileNotFoundError as exc:
            raise ObjectNotFoundError(f"Directory not found: {local}") from exc
        except OSError as exc:
            raise StoreError(f"list_dir failed for {local}: {exc}") from exc

    async def stat(self, path: str) -> StoreStat:
        return await asyncio.to_thread(self._stat, self._local(path))

    def _stat(self, local: Path) -> StoreStat:
        try:
            st = local.stat()
        except FileNotFoundError as exc:
            raise ObjectNotFoundError(f"Not found: {local}") from exc
        except OSError as exc:
            raise StoreError(f"stat failed for {local}: {exc}") from exc
        if local.is_dir():
            return StoreStat(type=EntryType.DIRECTORY, size=0)
        return StoreStat(type=EntryType.FILE, size=st.st_size)

    async def move(self, src: str, dst: str) -> None:
        await asyncio.to_thread(self._move, self._local(src), self._local(dst))

    def _move(self, src: Path, dst: Path) -> None:
        if not src.exists():
            raise ObjectNotFoundError(f"Not found: {src}")
        if src.is_file() and self._link_move(src, dst):
            return
        # directories, or mounts without hard links
        if dst.exists():
            raise NameCollisionError(f"STATUS_OBJECT_NAME_COLLISION: {dst} already exists")
        try:
            os.rename(src, dst)
        except OSError as exc:
            raise StoreError(f"rename failed {src} -> {dst}: {exc}") from exc

    @staticmethod
    def _link_move(src: Path, dst: Path) -> bool:
        """Move a file by link-then-unlink, which never replaces *dst*.

        Returns False when the filesystem cannot hard-link, leaving both paths
        untouched.
        """
        try:
            os.link(src, dst)
        except FileExistsError as exc:
            raise NameCollisionError(
                f"STATUS_OBJECT_NAME_COLLISION: {dst} already exists"
            ) from exc
        except OSError as exc:
            logger.debug("Hard link %s -> %s unavailable (%s), using rename", src, dst, exc)
            return False
        try:
            os.unlink(src)
        except OSError as exc:
            dst.unlink(missing_ok=True)
            raise StoreError(f"rename failed {src} -> {dst}: {exc}") from exc
        return True

    async def mkdir_p(self, path: str) -> None:
        local = self._local(path)
        try:
            await asyncio.to_thread(local.mkdir, parents=True, exist_ok=True)
        except OSError as exc:
            raise StoreError(f"mkdir failed for {local}: {exc}") from exc

    async def read_file(self, path: str) -> bytes:
        local = self._local(path)
        try:
            return await asyncio.to_thread(local.read_bytes)
        except FileNotFoundError as exc:
            raise ObjectNotFoundError(f"Not found: {local}") from exc
        except OSError as exc:
            raise StoreError(f"read failed for {local}: {exc}") from exc

    async def write_file(self, path: str, data: bytes) -> int:
        local = self._local(path)
        try:
            return await asyncio.to_thread(local.write_bytes, data)
        except OSError as exc:
            raise StoreError(f"write failed for {local}: {exc}") from exc

    async def delete(self, path: str) -> None:
        await asyncio.to_thread(self._delete, self._local(path))

    def _delete(self, local: Path) -> None:
        try:
            if local.is_dir():
                local.rmdir()
            else:
                local.unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            raise StoreError(f"delete failed for {local}: {exc}") from exc

    async def exists(self, path: str) -> bool:
        return await asyncio.to_thread(self._local(path).exists)

    async def is_accessible(self, path: str) -> bool:
        local = self._local(path)
        return await asyncio.to_thread(os.access, local, os.R_OK)

"""Store façade for the hot folder: layout, listing, and the move protocol.

Moves never overwrite. When a destination is occupied (including by an object
the store still shows after a delete-on-close), :meth:`FileManager.move_unique`
retries once under a timestamp-suffixed name.
"""

import logging
import posixpath
from collections.abc import Mapping
from datetime import UTC, datetime

from hotfolder.engine.filters import unique_variant
from hotfolder.schemas.hotfolder import FolderLayout
from hotfolder.schemas.store import EntryType, StoreEntry
from hotfolder.store.base import RemoteStore, StoreError

logger = logging.getLogger(__name__)

STAGES = ("incoming", "processing", "success", "errors")


def normalize(path: str) -> str:
    """Return *path* as an absolute, collapsed POSIX path."""
    return posixpath.normpath("/" + path.replace("\\", "/").lstrip("/"))


def join(base: str, rel: str) -> str:
    return normalize(posixpath.join(normalize(base), rel.lstrip("/\\")))


def stage_dirs(base: str, folders: FolderLayout) -> dict[str, str]:
    """Absolute paths of the four stage directories keyed by stage name."""
    return {stage: join(base, getattr(folders, stage)) for stage in STAGES}


class FileManager:
    """Higher-level file operations on top of a :class:`RemoteStore`.

    Usage::

        fm = FileManager(store)
        await fm.ensure_layout("/intake", FolderLayout())
        for name, size in await fm.list_candidates("/intake/incoming"):
            ...
    """

    def __init__(self, store: RemoteStore) -> None:
        self._store = store

    @property
    def store(self) -> RemoteStore:
        return self._store

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------

    async def ensure_layout(self, base: str, folders: FolderLayout) -> dict[str, str]:
        """Create the stage directories, best-effort.

        A directory that cannot be created is logged and skipped; the engine
        will surface the problem later as a listing or move error.
        """
        dirs = stage_dirs(base, folders)
        for stage, path in dirs.items():
            try:
                await self._store.mkdir_p(path)
            except StoreError as exc:
                logger.warning("Could not create %s folder %s: %s", stage, path, exc)
        return dirs

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    async def list_candidates(self, directory: str) -> list[tuple[str, int]]:
        """List regular files in *directory* as ``(name, size)`` pairs.

        Raises:
            StoreError: If the directory itself cannot be listed.
        """
        entries = await self._store.list_dir(directory)
        candidates = []
        for entry in entries:
            pair = await self.entry_to_candidate(directory, entry)
            if pair is not None:
                candidates.append(pair)
        return candidates

    async def entry_to_candidate(self, directory: str, entry: object) -> tuple[str, int] | None:
        """Normalize one listing entry into ``(name, size)``.

        Understands :class:`StoreEntry`, ``{"name", "type", "size"}`` mappings,
        ``(name, type[, size])`` tuples, and bare names. Missing sizes are
        fetched with a stat. Directories and unresolvable entries give None.
        """
        name: str | None = None
        kind: str | None = None
        size: int | None = None

        if isinstance(entry, StoreEntry):
            name, kind, size = entry.name, entry.type, entry.size
        elif isinstance(entry, Mapping):
            name, kind, size = entry.get("name"), entry.get("type"), entry.get("size")
        elif isinstance(entry, tuple) and entry:
            name = entry[0]
            kind = entry[1] if len(entry) > 1 else None
            size = entry[2] if len(entry) > 2 else None
        elif isinstance(entry, str):
            name = entry

        if not isinstance(name, str) or not name:
            return None
        if kind is not None and str(kind) == EntryType.DIRECTORY:
            return None
        if kind is not None and str(kind) != EntryType.FILE:
            return None

        if kind is None or not isinstance(size, int):
            try:
                st = await self._store.stat(join(directory, name))
            except StoreError as exc:
                logger.debug("Skipping %s: %s", name, exc)
                return None
            if st.type != EntryType.FILE:
                return None
            size = st.size

        return name, size

    # ------------------------------------------------------------------
    # Moves
    # ------------------------------------------------------------------

    async def move(self, src: str, dst: str) -> None:
        """Plain non-overwriting move. Raises :class:`StoreError`."""
        await self._store.move(src, dst)

    async def move_unique(self, src: str, dst: str) -> str:
        """Move to *dst*, or to a timestamp-suffixed variant if that fails.

        Returns:
            The path the file actually landed at.

        Raises:
            StoreError: If the suffixed attempt fails too.
        """
        try:
            await self._store.move(src, dst)
            return dst
        except StoreError as exc:
            alt = unique_variant(dst)
            logger.debug("Move to %s failed (%s), retrying as %s", dst, exc, alt)
            await self._store.move(src, alt)
            return alt

    # ------------------------------------------------------------------
    # Misc
    # ------------------------------------------------------------------

    async def delete_if_exists(self, path: str) -> bool:
        """Delete *path* if the store reports it present.

        Returns True if a delete was issued. On delete-on-close stores the
        object may remain visible for a while afterwards.
        """
        if not await self._store.exists(path):
            return False
        await self._store.delete(path)
        return True

    async def is_accessible(self, path: str) -> bool:
        """Probe *path*; transport failures count as inaccessible."""
        try:
            return await self._store.is_accessible(path)
        except StoreError as exc:
            logger.debug("Accessibility probe failed for %s: %s", path, exc)
            return False

    async def write_error_sidecar(
        self, errors_dir: str, name: str, reason: str, stuck_path: str
    ) -> str | None:
        """Drop ``<name>.error.txt`` into *errors_dir* describing a failure.

        Best-effort: returns the sidecar path, or None if it could not be
        written.
        """
        target = join(errors_dir, f"{name}.error.txt")
        body = (
            f"file: {name}\n"
            f"location: {stuck_path}\n"
            f"failed_at: {datetime.now(UTC).isoformat()}\n"
            f"reason: {reason}\n"
        ).encode()
        try:
            if await self._store.exists(target):
                target = unique_variant(target)
            await self._store.write_file(target, body)
            return target
        except StoreError as exc:
            logger.warning("Could not write error sidecar for %s: %s", name, exc)
            return None

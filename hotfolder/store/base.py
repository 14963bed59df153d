"""Remote file-store contract consumed by the hot folder engine.

The transport itself (SMB client, connection pool, load balancing) lives
outside this package. Anything that implements :class:`RemoteStore` can be
plugged into :class:`hotfolder.engine.poller.HotFolder`; see
:class:`hotfolder.store.local.LocalStore` for the filesystem-backed one.

Paths are always share-relative POSIX paths starting with ``/``.
"""

from typing import Any, Protocol, runtime_checkable

from hotfolder.schemas.store import StoreStat


class StoreError(Exception):
    """Base exception for remote store failures."""


class NameCollisionError(StoreError):
    """A non-overwriting move hit an existing destination.

    Stores with delete-on-close semantics raise this even after the previous
    occupant was "deleted" while some other handle is still open.
    """


class ObjectNotFoundError(StoreError):
    """The requested object does not exist."""


@runtime_checkable
class RemoteStore(Protocol):
    """Async interface every store adapter must expose.

    All methods raise :class:`StoreError` (or a subclass) on failure.
    """

    async def connect(
        self, url: str, username: str | None, password: str | None, pool_size: int
    ) -> None:
        """Prepare the connection pool. Safe to call more than once."""
        ...

    async def list_dir(self, path: str) -> list[Any]:
        """List a directory.

        Entries are normally :class:`~hotfolder.schemas.store.StoreEntry`
        objects or ``{"name", "type", "size"}`` mappings; bare names and
        ``(name, type)`` tuples are tolerated.
        """
        ...

    async def stat(self, path: str) -> StoreStat:
        """Return type and size. Raises :class:`ObjectNotFoundError`."""
        ...

    async def move(self, src: str, dst: str) -> None:
        """Rename without overwriting. Raises :class:`NameCollisionError`."""
        ...

    async def mkdir_p(self, path: str) -> None:
        ...

    async def read_file(self, path: str) -> bytes:
        ...

    async def write_file(self, path: str, data: bytes) -> int:
        ...

    async def delete(self, path: str) -> None:
        """Delete a file or empty directory. A missing object is not an error."""
        ...

    async def exists(self, path: str) -> bool:
        ...

    async def is_accessible(self, path: str) -> bool:
        ...

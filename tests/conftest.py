"""Shared fixtures for hotfolder tests."""

import pytest

from hotfolder.schemas.store import EntryType, StoreEntry, StoreStat
from hotfolder.store.base import NameCollisionError, ObjectNotFoundError, StoreError
from hotfolder.store.local import LocalStore


@pytest.fixture(autouse=True)
def _no_sops(monkeypatch):
    """Ensure tests never try to invoke SOPS."""
    monkeypatch.setenv("HOTFOLDER_USE_SOPS", "false")


@pytest.fixture()
def share(tmp_path):
    """A local directory standing in for the remote share root."""
    root = tmp_path / "share"
    root.mkdir()
    return root


@pytest.fixture()
def store(share):
    return LocalStore(share)


class ScriptedStore:
    """In-memory store whose stat sizes and failures can be scripted.

    ``sizes[path]`` may be a list; each stat pops the next value (the last one
    sticks). ``fail_moves_to`` makes moves to matching destinations raise.
    """

    def __init__(self) -> None:
        self.files: dict[str, int] = {}
        self.dirs: set[str] = {"/"}
        self.sizes: dict[str, list[int]] = {}
        self.fail_list = False
        self.fail_moves_to: set[str] = set()
        self.fail_all_moves = False
        self.connect_error: Exception | None = None
        self.connect_calls = 0
        self.moves: list[tuple[str, str]] = []
        self.move_attempts: list[tuple[str, str]] = []
        self.written: dict[str, bytes] = {}

    async def connect(self, url, username, password, pool_size):
        self.connect_calls += 1
        if self.connect_error is not None:
            raise self.connect_error

    async def list_dir(self, path):
        if self.fail_list:
            raise StoreError("STATUS_IO_TIMEOUT")
        prefix = path.rstrip("/") + "/"
        entries = []
        for f, size in self.files.items():
            if f.startswith(prefix) and "/" not in f[len(prefix):]:
                entries.append(StoreEntry(name=f[len(prefix):], type=EntryType.FILE, size=size))
        for d in self.dirs:
            if d.startswith(prefix) and d != prefix.rstrip("/") and "/" not in d[len(prefix):]:
                entries.append(StoreEntry(name=d[len(prefix):], type=EntryType.DIRECTORY))
        return entries

    async def stat(self, path):
        if path in self.sizes:
            seq = self.sizes[path]
            size = seq.pop(0) if len(seq) > 1 else seq[0]
            return StoreStat(type=EntryType.FILE, size=size)
        if path in self.files:
            return StoreStat(type=EntryType.FILE, size=self.files[path])
        if path in self.dirs:
            return StoreStat(type=EntryType.DIRECTORY)
        raise ObjectNotFoundError(path)

    async def move(self, src, dst):
        self.move_attempts.append((src, dst))
        if self.fail_all_moves:
            raise StoreError("STATUS_ACCESS_DENIED")
        if any(dst.startswith(p) for p in self.fail_moves_to):
            raise StoreError("STATUS_SHARING_VIOLATION")
        if dst in self.files:
            raise NameCollisionError(f"STATUS_OBJECT_NAME_COLLISION: {dst}")
        if src not in self.files:
            raise ObjectNotFoundError(src)
        self.files[dst] = self.files.pop(src)
        self.moves.append((src, dst))

    async def mkdir_p(self, path):
        self.dirs.add(path)

    async def read_file(self, path):
        return self.written.get(path, b"")

    async def write_file(self, path, data):
        self.written[path] = data
        self.files[path] = len(data)
        return len(data)

    async def delete(self, path):
        self.files.pop(path, None)

    async def exists(self, path):
        return path in self.files or path in self.dirs

    async def is_accessible(self, path):
        return path in self.files or path in self.dirs


@pytest.fixture()
def scripted_store():
    return ScriptedStore()

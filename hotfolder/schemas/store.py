"""Schemas for the remote file-store contract.

These are the shapes the store hands back from ``list_dir`` and ``stat``.
"""

from enum import StrEnum

from pydantic import BaseModel, Field


class EntryType(StrEnum):
    """Kind of object found in a store listing."""

    FILE = "file"
    DIRECTORY = "directory"


class StoreEntry(BaseModel):
    """One row of a directory listing."""

    name: str
    type: EntryType = EntryType.FILE
    size: int = Field(default=0, ge=0)


class StoreStat(BaseModel):
    """Metadata for a single object."""

    type: EntryType
    size: int = Field(default=0, ge=0)

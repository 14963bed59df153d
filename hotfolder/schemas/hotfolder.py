"""Schemas for the hot folder pipeline.

Covers engine configuration, the file descriptor handed to handlers, runtime
status snapshots, handler results, and audit events.

All durations are integer milliseconds.
"""

import posixpath
import re
from collections.abc import Callable
from datetime import datetime
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# ------------------------------------------------------------------
# Configuration
# ------------------------------------------------------------------


class ConnectionSettings(BaseModel):
    """Where the store lives and how to authenticate against it."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    url: str = Field(default="", description="smb://host/share, file:///path or a plain path")
    username: str | None = None
    password: str | None = Field(default=None, repr=False)
    pool_size: int = Field(default=2, ge=1)


class FolderLayout(BaseModel):
    """Relative names of the four pipeline stages under ``base_path``."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    incoming: str = "incoming"
    processing: str = "processing"
    success: str = "success"
    errors: str = "errors"

    @model_validator(mode="after")
    def _check_distinct(self) -> "FolderLayout":
        names = [self.incoming, self.processing, self.success, self.errors]
        if any(not n.strip("/ ") for n in names):
            raise ValueError("folder names must not be empty")
        if len(set(names)) != len(names):
            raise ValueError("folder names must be distinct")
        return self


def _default_excludes() -> list[re.Pattern]:
    # dotfiles and editor/temp files ending in "~"
    return [re.compile(r"^\."), re.compile(r"~$")]


class FilterSettings(BaseModel):
    """Which files in ``incoming/`` qualify for processing."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name_patterns: list[re.Pattern] = Field(
        default_factory=list, description="Include regexes; empty means everything"
    )
    exclude_patterns: list[re.Pattern] = Field(default_factory=_default_excludes)
    min_size: int = Field(default=0, ge=0)
    max_size: int | None = Field(default=None, ge=0, description="None means unbounded")
    extensions: list[str] | None = Field(
        default=None, description="Extension allow-list such as ['.pdf', '.txt']"
    )

    @field_validator("extensions")
    @classmethod
    def _normalize_extensions(cls, v: list[str] | None) -> list[str] | None:
        if v is None:
            return None
        return [e.lower() if e.startswith(".") else f".{e.lower()}" for e in v]

    @model_validator(mode="after")
    def _check_bounds(self) -> "FilterSettings":
        if self.max_size is not None and self.max_size < self.min_size:
            raise ValueError("filters.max_size must be >= filters.min_size")
        return self


class StabilitySettings(BaseModel):
    """Require ``checks`` identical size samples, ``interval`` ms apart."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    checks: int = Field(default=2, ge=1)
    interval: int = Field(default=1_000, ge=0)


class PollIntervalSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    initial: int = Field(default=2_000, ge=10)
    max: int = Field(default=30_000, ge=10)
    backoff_factor: float = Field(default=2.0, gt=0)

    @model_validator(mode="after")
    def _check_order(self) -> "PollIntervalSettings":
        if self.initial > self.max:
            raise ValueError("poll_interval.initial must be <= poll_interval.max")
        return self


class HotFolderConfig(BaseModel):
    """Validated, immutable settings for one :class:`HotFolder` engine.

    Usage::

        cfg = HotFolderConfig(
            connection={"url": "/mnt/scans"},
            base_path="/intake",
            filters={"extensions": [".pdf"]},
            handler="myapp.ingest:handle_file",
        )
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    connection: ConnectionSettings = Field(default_factory=ConnectionSettings)
    base_path: str = "/"
    folders: FolderLayout = Field(default_factory=FolderLayout)
    filters: FilterSettings = Field(default_factory=FilterSettings)
    stability: StabilitySettings = Field(default_factory=StabilitySettings)
    poll_interval: PollIntervalSettings = Field(default_factory=PollIntervalSettings)
    handler: Callable[..., Any] = Field(
        description="Callable or 'package.module:attr' reference taking a FileInfo"
    )
    handler_args: tuple[Any, ...] = Field(
        default=(), description="Extra positional arguments passed after the FileInfo"
    )
    handler_timeout: int = Field(default=300_000, gt=0)
    max_retries: int = Field(
        default=0,
        ge=0,
        description="Opt-in re-invocations after a failure; 0 calls the handler once",
    )
    candidate_order: Literal["listing", "name"] = "listing"
    error_sidecars: bool = True

    @field_validator("base_path")
    @classmethod
    def _normalize_base(cls, v: str) -> str:
        return posixpath.normpath("/" + v.replace("\\", "/").strip().lstrip("/"))

    @field_validator("handler", mode="before")
    @classmethod
    def _resolve_handler(cls, v: Any) -> Any:
        if isinstance(v, str):
            from hotfolder.engine.handler import resolve_handler

            return resolve_handler(v)
        return v


# ------------------------------------------------------------------
# Runtime
# ------------------------------------------------------------------


class FileInfo(BaseModel):
    """What the handler is told about the file it must process."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(description="Current path of the file inside processing/")
    name: str = Field(description="Original file name as it arrived in incoming/")
    size: int = Field(ge=0)


class EngineStatus(StrEnum):
    STARTING = "starting"
    POLLING = "polling"
    PROCESSING = "processing"
    ERROR = "error"


class PollOutcome(StrEnum):
    """Result of a single poll cycle."""

    BUSY = "busy"
    IDLE = "idle"
    UNSTABLE = "unstable"
    LISTING_ERROR = "listing_error"
    MOVE_FAILED = "move_failed"
    PROCESSED = "processed"
    FAILED = "failed"


class HotFolderStats(BaseModel):
    """Point-in-time snapshot of engine counters."""

    files_processed: int = 0
    files_failed: int = 0
    status: EngineStatus
    current_file: str | None = None
    uptime_ms: int = 0
    last_poll: datetime | None = None
    current_interval_ms: int


class HandlerResult(BaseModel):
    """Outcome of one handler invocation.

    Handlers may return one of these explicitly to report a failure without
    raising; any other return value is wrapped as a success.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    ok: bool
    value: Any = None
    reason: str = ""
    error: BaseException | None = None

    @classmethod
    def success(cls, value: Any = None) -> "HandlerResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, reason: str, error: BaseException | None = None) -> "HandlerResult":
        return cls(ok=False, reason=reason, error=error)


class FileOutcome(StrEnum):
    """Where a file ended up after handling."""

    PROCESSED = "processed"
    RENAMED = "renamed"
    FAILED = "failed"


class FileEvent(BaseModel):
    """An audit record for a single processed file."""

    timestamp: datetime
    file_name: str
    size_bytes: int = Field(default=0, ge=0)
    outcome: FileOutcome
    source_path: str = Field(description="Path of the file inside processing/")
    destination: str = Field(
        default="", description="Final path under success/, empty when the file is stuck"
    )
    error_message: str = Field(default="", description="Handler or move failure reason")
    attempts: int = Field(default=1, ge=1, description="Handler invocations for this file")

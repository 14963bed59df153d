"""Hot folder poll engine.

Polls ``incoming/`` on a store, picks the first file that passes the filters
and the stability check, walks it through ``processing/`` and routes it to
``success/`` once the handler is done with it. One file is in flight at a time
and poll cycles never overlap.

States::

    starting -> polling <-> processing(name) -> polling | error

``error`` is not terminal; the next poll starts over.
"""

import asyncio
import logging
import time
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from hotfolder.engine.audit import HotFolderAuditLog
from hotfolder.engine.file_manager import FileManager, join, stage_dirs
from hotfolder.engine.filters import is_collision, matches, unique_variant
from hotfolder.engine.handler import TIMEOUT_REASON, invoke_handler
from hotfolder.engine.stability import is_stable
from hotfolder.schemas.hotfolder import (
    EngineStatus,
    FileEvent,
    FileInfo,
    FileOutcome,
    HandlerResult,
    HotFolderConfig,
    HotFolderStats,
    PollIntervalSettings,
    PollOutcome,
)
from hotfolder.store.base import RemoteStore, StoreError

logger = logging.getLogger(__name__)

# Floor for the poll interval, whatever the backoff factor does
MIN_INTERVAL_MS = 10


def next_interval(current_ms: int, poll: PollIntervalSettings) -> int:
    """Backoff step: ``clamp(round(current * factor), MIN_INTERVAL_MS, max)``."""
    return min(poll.max, max(MIN_INTERVAL_MS, round(current_ms * poll.backoff_factor)))


class HotFolder:
    """Sequential poll-and-process engine for one folder tree.

    Usage::

        async with HotFolder(config, store) as hf:
            hf.poll_now()
            ...
            print(hf.stats())

    Config errors (missing handler, ``initial > max``) raise
    ``pydantic.ValidationError`` here, before anything touches the store.
    """

    def __init__(
        self,
        config: HotFolderConfig | Mapping[str, Any],
        store: RemoteStore,
        *,
        audit_log: HotFolderAuditLog | None = None,
    ) -> None:
        if not isinstance(config, HotFolderConfig):
            config = HotFolderConfig.model_validate(config)
        self._cfg = config
        self._store = store
        self._fm = FileManager(store)
        self._audit_log = audit_log
        self._dirs = stage_dirs(config.base_path, config.folders)

        self._interval_ms = config.poll_interval.initial
        self._last_poll: datetime | None = None
        self._files_processed = 0
        self._files_failed = 0
        self._status = EngineStatus.STARTING
        self._current_file: str | None = None
        self._started_at: float | None = None

        self._cycle_lock = asyncio.Lock()
        self._wake = asyncio.Event()
        self._task: asyncio.Task | None = None

    async def __aenter__(self) -> "HotFolder":
        await self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def config(self) -> HotFolderConfig:
        return self._cfg

    @property
    def dirs(self) -> dict[str, str]:
        """Absolute store paths of the stage directories."""
        return dict(self._dirs)

    @property
    def current_file(self) -> str | None:
        """Name of the file being processed, if any."""
        return self._current_file

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def prepare(self) -> None:
        """Warm the store and create the folder layout without polling.

        Both steps are best-effort. :meth:`start` calls this; call it directly
        when driving the engine with :meth:`poll_once`.
        """
        if self._started_at is None:
            self._started_at = time.monotonic()
        await self._prewarm()
        await self._fm.ensure_layout(self._cfg.base_path, self._cfg.folders)

    async def start(self) -> None:
        """Warm the store, create the folder layout and begin polling."""
        if self._task is not None:
            raise RuntimeError("HotFolder already started")

        self._started_at = time.monotonic()
        await self.prepare()

        self._task = asyncio.create_task(self._run(), name=f"hotfolder:{self._cfg.base_path}")
        logger.info(
            "[%s] Hot folder started, watching %s", self._cfg.base_path, self._dirs["incoming"]
        )

    async def stop(self, reason: str = "normal") -> None:
        """Stop polling. A file in flight is abandoned where it is."""
        if self._task is None:
            return
        logger.info("[%s] Stopping hot folder (%s)", self._cfg.base_path, reason)
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None

    async def run_until_stopped(self) -> None:
        """Block until the poll loop ends (cancellation or :meth:`stop`)."""
        if self._task is None:
            raise RuntimeError("HotFolder not started")
        try:
            await self._task
        except asyncio.CancelledError:
            pass

    def poll_now(self) -> None:
        """Ask for a poll without waiting out the current interval.

        While a file is being processed the request is folded into the next
        scheduled wait; in-flight work is never interrupted.
        """
        self._wake.set()

    def status(self) -> EngineStatus:
        """Current engine state.

        Returns:
            The bare :class:`EngineStatus`. For ``PROCESSING`` the file name is
            not folded into the value; read it from :attr:`current_file`, or take
            both in one snapshot from :meth:`stats`.
        """
        return self._status

    def stats(self) -> HotFolderStats:
        uptime_ms = 0
        if self._started_at is not None:
            uptime_ms = int((time.monotonic() - self._started_at) * 1000)
        return HotFolderStats(
            files_processed=self._files_processed,
            files_failed=self._files_failed,
            status=self._status,
            current_file=self._current_file,
            uptime_ms=uptime_ms,
            last_poll=self._last_poll,
            current_interval_ms=self._interval_ms,
        )

    async def poll_once(self) -> PollOutcome:
        """Run one poll cycle now.

        Returns ``PollOutcome.BUSY`` without touching the store if a cycle is
        already running.
        """
        if self._cycle_lock.locked() or self._status == EngineStatus.PROCESSING:
            return PollOutcome.BUSY
        async with self._cycle_lock:
            try:
                return await self._cycle()
            finally:
                if self._status == EngineStatus.PROCESSING:
                    # only reachable if something unexpected escaped _process
                    self._status = EngineStatus.ERROR
                self._current_file = None

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        while True:
            try:
                await self.poll_once()
            except Exception:
                logger.exception("[%s] Unexpected error in poll cycle", self._cfg.base_path)
                self._status = EngineStatus.ERROR
            await self._wait(self._interval_ms)

    async def _wait(self, interval_ms: int) -> None:
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=interval_ms / 1000)
        except TimeoutError:
            pass
        self._wake.clear()

    async def _prewarm(self) -> None:
        conn = self._cfg.connection
        try:
            await self._store.connect(conn.url, conn.username, conn.password, conn.pool_size)
        except Exception as exc:
            logger.warning(
                "[%s] Store pre-warm failed, continuing (%s)", self._cfg.base_path, exc
            )

    def _backoff(self) -> None:
        self._interval_ms = next_interval(self._interval_ms, self._cfg.poll_interval)

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    async def _cycle(self) -> PollOutcome:
        self._last_poll = datetime.now(UTC)
        incoming = self._dirs["incoming"]

        try:
            entries = await self._fm.list_candidates(incoming)
        except StoreError as exc:
            logger.warning("[%s] Poll error listing %s: %s", self._cfg.base_path, incoming, exc)
            self._status = EngineStatus.ERROR
            self._backoff()
            return PollOutcome.LISTING_ERROR

        candidates = [(n, s) for n, s in entries if matches(n, s, self._cfg.filters)]
        if self._cfg.candidate_order == "name":
            candidates.sort(key=lambda c: c[0])

        if not candidates:
            self._status = EngineStatus.POLLING
            self._backoff()
            return PollOutcome.IDLE

        name, size = candidates[0]
        incoming_path = join(incoming, name)
        stable = await is_stable(
            self._store, incoming_path, self._cfg.stability.checks, self._cfg.stability.interval
        )
        if not stable:
            self._status = EngineStatus.POLLING
            self._backoff()
            return PollOutcome.UNSTABLE

        self._interval_ms = self._cfg.poll_interval.initial
        self._status = EngineStatus.PROCESSING
        self._current_file = name
        return await self._process(name, size, incoming_path)

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def _process(self, name: str, size: int, incoming_path: str) -> PollOutcome:
        try:
            processing_path = await self._fm.move_unique(
                incoming_path, join(self._dirs["processing"], name)
            )
        except StoreError as exc:
            logger.warning(
                "[%s] Move to processing failed for %s: %s", self._cfg.base_path, name, exc
            )
            self._status = EngineStatus.ERROR
            return PollOutcome.MOVE_FAILED

        info = FileInfo(path=processing_path, name=name, size=size)
        logger.info("[%s] Processing %s (%d bytes)", self._cfg.base_path, name, size)

        result, attempts = await self._call_handler(info)

        if result.ok:
            return await self._route_success(info, attempts)
        if is_collision(result.error) or is_collision(result.reason):
            return await self._route_collision(info, result, attempts)
        return await self._fail(info, result.reason, attempts)

    async def _call_handler(self, info: FileInfo) -> tuple[HandlerResult, int]:
        attempts = 0
        while True:
            attempts += 1
            result = await invoke_handler(
                self._cfg.handler,
                info,
                self._cfg.handler_timeout,
                extra_args=self._cfg.handler_args,
            )
            if result.ok or result.reason == TIMEOUT_REASON:
                return result, attempts
            if is_collision(result.error) or is_collision(result.reason):
                return result, attempts
            if attempts > self._cfg.max_retries:
                return result, attempts
            logger.info(
                "[%s] Handler failed on %s (attempt %d/%d): %s, retrying",
                self._cfg.base_path,
                info.name,
                attempts,
                self._cfg.max_retries + 1,
                result.reason,
            )

    async def _route_success(self, info: FileInfo, attempts: int) -> PollOutcome:
        dest = join(self._dirs["success"], info.name)
        try:
            landed = await self._fm.move_unique(info.path, dest)
        except StoreError as exc:
            return await self._fail(info, f"move to success failed: {exc}", attempts)

        if landed == dest:
            return self._processed(info, landed, FileOutcome.PROCESSED, attempts)
        logger.warning(
            "[%s] Destination exists, saved %s as %s",
            self._cfg.base_path,
            info.name,
            landed.rsplit("/", 1)[-1],
        )
        return self._processed(info, landed, FileOutcome.RENAMED, attempts)

    async def _route_collision(
        self, info: FileInfo, result: HandlerResult, attempts: int
    ) -> PollOutcome:
        alt = unique_variant(join(self._dirs["success"], info.name))
        try:
            await self._fm.move(info.path, alt)
        except StoreError as exc:
            return await self._fail(info, f"move to success (alt) failed: {exc}", attempts)
        logger.warning(
            "[%s] Handler reported a name collision (%s), saved %s as %s",
            self._cfg.base_path,
            result.reason,
            info.name,
            alt.rsplit("/", 1)[-1],
        )
        return self._processed(info, alt, FileOutcome.RENAMED, attempts)

    def _processed(
        self, info: FileInfo, dest: str, outcome: FileOutcome, attempts: int
    ) -> PollOutcome:
        self._files_processed += 1
        self._status = EngineStatus.POLLING
        self._current_file = None
        logger.info("[%s] Done: %s -> %s", self._cfg.base_path, info.name, dest)
        self._record(info, outcome, destination=dest, attempts=attempts)
        return PollOutcome.PROCESSED

    async def _fail(self, info: FileInfo, reason: str, attempts: int) -> PollOutcome:
        self._files_failed += 1
        self._status = EngineStatus.ERROR
        self._current_file = None
        logger.warning(
            "[%s] Failed: %s left in %s (%s)", self._cfg.base_path, info.name, info.path, reason
        )
        if self._cfg.error_sidecars:
            await self._fm.write_error_sidecar(self._dirs["errors"], info.name, reason, info.path)
        self._record(info, FileOutcome.FAILED, error_message=reason, attempts=attempts)
        return PollOutcome.FAILED

    def _record(
        self,
        info: FileInfo,
        outcome: FileOutcome,
        *,
        destination: str = "",
        error_message: str = "",
        attempts: int = 1,
    ) -> None:
        if self._audit_log is None:
            return
        event = FileEvent(
            timestamp=datetime.now(UTC),
            file_name=info.name,
            size_bytes=info.size,
            outcome=outcome,
            source_path=info.path,
            destination=destination,
            error_message=error_message,
            attempts=attempts,
        )
        try:
            self._audit_log.log(event)
        except OSError as exc:
            logger.warning("[%s] Could not write audit event: %s", self._cfg.base_path, exc)

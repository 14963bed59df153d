"""Append-only JSONL audit log of hot folder file outcomes.

One line per file that left ``processing(name)``: where it went, or why it is
stuck. A line that cannot be parsed (a write cut short by a crash) is skipped
with a warning rather than hiding the rest of the history.
"""

import logging
from collections import Counter
from collections.abc import Iterator
from datetime import datetime
from pathlib import Path

from pydantic import ValidationError

from hotfolder.schemas.hotfolder import FileEvent, FileOutcome

logger = logging.getLogger(__name__)


class HotFolderAuditLog:
    """JSONL file of :class:`FileEvent` records, oldest first.

    Usage::

        audit = HotFolderAuditLog("/var/lib/hotfolder/audit.jsonl")
        audit.log(event)
        stuck = audit.read_entries(outcome=FileOutcome.FAILED, limit=10)
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._path

    def log(self, event: FileEvent) -> None:
        with self._path.open("a") as f:
            f.write(event.model_dump_json() + "\n")
        logger.debug("Audit: %s %s (%d attempt(s))", event.file_name, event.outcome, event.attempts)

    def read_entries(
        self,
        *,
        since: datetime | None = None,
        outcome: FileOutcome | None = None,
        file_name: str | None = None,
        limit: int | None = None,
    ) -> list[FileEvent]:
        """Return recorded events matching every given filter.

        Args:
            since: Only events strictly after this timestamp.
            outcome: Only events with this outcome.
            file_name: Only events for this original file name.
            limit: Keep the newest *limit* events after filtering.
        """
        entries = [
            event
            for event in self._iter_events()
            if (since is None or event.timestamp > since)
            and (outcome is None or event.outcome == outcome)
            and (file_name is None or event.file_name == file_name)
        ]
        if limit is not None:
            entries = entries[-limit:] if limit > 0 else []
        return entries

    def counts(self, *, since: datetime | None = None) -> dict[FileOutcome, int]:
        """Tally events per outcome; outcomes never seen count as zero."""
        tally = Counter(event.outcome for event in self.read_entries(since=since))
        return {outcome: tally.get(outcome, 0) for outcome in FileOutcome}

    def _iter_events(self) -> Iterator[FileEvent]:
        if not self._path.exists():
            return
        with self._path.open() as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    yield FileEvent.model_validate_json(line)
                except ValidationError as exc:
                    logger.warning(
                        "Skipping unreadable audit line %d in %s: %s",
                        lineno,
                        self._path,
                        exc.errors()[0]["msg"],
                    )

"""Tests for the hot folder JSONL audit log."""

from datetime import UTC, datetime, timedelta

import pytest

from hotfolder.engine.audit import HotFolderAuditLog
from hotfolder.schemas.hotfolder import FileEvent, FileOutcome

NOW = datetime(2026, 5, 4, 9, 30, tzinfo=UTC)


def _event(name="scan.pdf", outcome=FileOutcome.PROCESSED, *, age_s=0, attempts=1) -> FileEvent:
    failed = outcome == FileOutcome.FAILED
    return FileEvent(
        timestamp=NOW - timedelta(seconds=age_s),
        file_name=name,
        size_bytes=1024,
        outcome=outcome,
        source_path=f"/hf/processing/{name}",
        destination="" if failed else f"/hf/success/{name}",
        error_message="abnormal termination: ValueError: boom" if failed else "",
        attempts=attempts,
    )


@pytest.fixture
def audit(tmp_path):
    return HotFolderAuditLog(tmp_path / "audit.jsonl")


class TestWriting:
    def test_one_json_line_per_event(self, audit):
        audit.log(_event("a.pdf"))
        audit.log(_event("b.pdf", FileOutcome.FAILED))

        lines = audit.path.read_text().splitlines()
        assert len(lines) == 2
        assert '"outcome":"failed"' in lines[1]

    def test_parent_dirs_created(self, tmp_path):
        audit = HotFolderAuditLog(tmp_path / "var" / "lib" / "audit.jsonl")
        audit.log(_event())
        assert audit.path.exists()

    def test_appends_across_instances(self, audit):
        audit.log(_event("a.pdf"))
        HotFolderAuditLog(audit.path).log(_event("b.pdf"))
        assert [e.file_name for e in audit.read_entries()] == ["a.pdf", "b.pdf"]


class TestReading:
    def test_missing_file_is_empty(self, audit):
        assert audit.read_entries() == []

    def test_fields_survive(self, audit):
        audit.log(_event("stuck.pdf", FileOutcome.FAILED, attempts=4))

        [entry] = audit.read_entries()
        assert entry.timestamp == NOW
        assert entry.destination == ""
        assert entry.error_message.startswith("abnormal termination")
        assert entry.attempts == 4

    def test_torn_and_blank_lines_skipped(self, audit):
        audit.log(_event("a.pdf"))
        with audit.path.open("a") as f:
            f.write('\n{"timestamp": "2026-05-04T09:\n')
        audit.log(_event("b.pdf"))

        assert [e.file_name for e in audit.read_entries()] == ["a.pdf", "b.pdf"]


class TestFiltering:
    @pytest.fixture(autouse=True)
    def _history(self, audit):
        audit.log(_event("old.pdf", age_s=60))
        audit.log(_event("a.pdf", FileOutcome.FAILED, age_s=30))
        audit.log(_event("a.pdf", FileOutcome.RENAMED, age_s=20))
        audit.log(_event("b.pdf", age_s=10))
        audit.log(_event("c.pdf", FileOutcome.FAILED))

    def test_since_is_exclusive(self, audit):
        entries = audit.read_entries(since=NOW - timedelta(seconds=20))
        assert [e.file_name for e in entries] == ["b.pdf", "c.pdf"]

    def test_by_outcome(self, audit):
        entries = audit.read_entries(outcome=FileOutcome.FAILED)
        assert [e.file_name for e in entries] == ["a.pdf", "c.pdf"]

    def test_by_file_name(self, audit):
        entries = audit.read_entries(file_name="a.pdf")
        assert [e.outcome for e in entries] == [FileOutcome.FAILED, FileOutcome.RENAMED]

    def test_limit_keeps_newest(self, audit):
        assert [e.file_name for e in audit.read_entries(limit=2)] == ["b.pdf", "c.pdf"]
        assert audit.read_entries(limit=0) == []

    def test_filters_combine(self, audit):
        entries = audit.read_entries(
            since=NOW - timedelta(seconds=45), outcome=FileOutcome.FAILED, limit=5
        )
        assert [e.file_name for e in entries] == ["a.pdf", "c.pdf"]


class TestCounts:
    def test_empty_log_counts_zero(self, audit):
        assert audit.counts() == {
            FileOutcome.PROCESSED: 0,
            FileOutcome.RENAMED: 0,
            FileOutcome.FAILED: 0,
        }

    def test_tally(self, audit):
        audit.log(_event("a.pdf"))
        audit.log(_event("b.pdf"))
        audit.log(_event("c.pdf", FileOutcome.FAILED, age_s=120))

        assert audit.counts()[FileOutcome.PROCESSED] == 2
        assert audit.counts()[FileOutcome.FAILED] == 1
        assert audit.counts(since=NOW - timedelta(seconds=60))[FileOutcome.FAILED] == 0

"""Tests for conflict quarantine, keep-both documents and the sync log."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

from minimem_sync.sync.conflicts import (
    conflict_timestamp,
    flatten_name,
    keep_both_content,
    list_quarantined_conflicts,
    quarantine_conflict,
)
from minimem_sync.sync.history import (
    MAX_LOG_ENTRIES,
    append_sync_log,
    log_entry_from_report,
    read_sync_log,
)
from minimem_sync.sync.models import (
    FileSyncStatus,
    SyncAction,
    SyncReport,
    SyncResult,
)
from minimem_sync.sync.paths import conflicts_dir, log_path


class TestQuarantine:
    def test_flatten_name(self):
        assert flatten_name("notes/2024/a.md") == "notes__2024__a.md"
        assert flatten_name("a.md") == "a.md"

    def test_timestamp_format(self):
        when = datetime(2026, 3, 4, 5, 6, 7, tzinfo=timezone.utc)
        assert conflict_timestamp(when) == "20260304T050607Z"

    def test_both_versions_written(self, tmp_path: Path):
        target = quarantine_conflict(
            tmp_path, "notes/a.md", b"local", b"remote", "20260101T000000Z"
        )

        assert target == conflicts_dir(tmp_path) / "20260101T000000Z"
        assert (target / "notes__a.md.local").read_bytes() == b"local"
        assert (target / "notes__a.md.remote").read_bytes() == b"remote"

    def test_absent_side_skipped(self, tmp_path: Path):
        target = quarantine_conflict(tmp_path, "a.md", None, b"remote", "ts")

        assert sorted(p.name for p in target.iterdir()) == ["a.md.remote"]

    def test_list_newest_first(self, tmp_path: Path):
        quarantine_conflict(tmp_path, "a.md", b"1", b"2", "20260101T000000Z")
        quarantine_conflict(tmp_path, "b.md", b"1", b"2", "20260202T000000Z")

        listed = list_quarantined_conflicts(tmp_path)

        assert [c.timestamp for c in listed] == [
            "20260202T000000Z",
            "20260101T000000Z",
        ]
        assert listed[0].files == ["b.md.local", "b.md.remote"]

    def test_list_empty(self, tmp_path: Path):
        assert list_quarantined_conflicts(tmp_path) == []


class TestKeepBoth:
    def test_markers_and_order(self):
        merged = keep_both_content(b"mine\n", b"theirs", "TS")

        assert merged == (
            b"<<<<<<< LOCAL (TS)\n"
            b"mine\n"
            b"=======\n"
            b"theirs\n"
            b">>>>>>> REMOTE (TS)\n"
        )

    def test_non_utf8_bytes_preserved(self):
        merged = keep_both_content(b"\xff\xfe\n", b"", "TS")
        assert b"\xff\xfe\n=======\n" in merged


def _report(*results: SyncResult) -> SyncReport:
    return SyncReport(
        operation="push",
        memory_dir="/m",
        central_path="work/",
        results=list(results),
        started_at="2026-01-01T00:00:00+00:00",
        completed_at="2026-01-01T00:00:01+00:00",
    )


class TestSyncLog:
    def test_entry_from_report(self):
        report = _report(
            SyncResult(file="a.md", status=FileSyncStatus.NEW_LOCAL, action=SyncAction.PUSH),
            SyncResult(
                file="b.md",
                status=FileSyncStatus.CONFLICT,
                action=SyncAction.CONFLICT,
                success=False,
            ),
        )

        assert log_entry_from_report(report) == {
            "timestamp": "2026-01-01T00:00:01+00:00",
            "operation": "push",
            "centralPath": "work/",
            "pushed": 1,
            "pulled": 0,
            "merged": 0,
            "conflicts": 1,
            "errors": 0,
            "success": False,
        }

    def test_append_and_read(self, tmp_path: Path):
        append_sync_log(tmp_path, {"n": 1})
        append_sync_log(tmp_path, {"n": 2})

        assert read_sync_log(tmp_path) == [{"n": 1}, {"n": 2}]
        assert read_sync_log(tmp_path, limit=1) == [{"n": 2}]
        assert log_path(tmp_path).read_text().count("\n") == 2

    def test_trimmed_to_max_entries(self, tmp_path: Path):
        path = log_path(tmp_path)
        path.parent.mkdir()
        path.write_text(
            "".join(json.dumps({"n": i}) + "\n" for i in range(MAX_LOG_ENTRIES))
        )

        append_sync_log(tmp_path, {"n": MAX_LOG_ENTRIES})

        entries = read_sync_log(tmp_path)
        assert len(entries) == MAX_LOG_ENTRIES
        assert entries[0] == {"n": 1}
        assert entries[-1] == {"n": MAX_LOG_ENTRIES}

    def test_malformed_lines_skipped(self, tmp_path: Path):
        path = log_path(tmp_path)
        path.parent.mkdir()
        path.write_text('{"n": 1}\nnot json\n[1, 2]\n\n{"n": 2}\n')

        assert read_sync_log(tmp_path) == [{"n": 1}, {"n": 2}]

    def test_missing_log(self, tmp_path: Path):
        assert read_sync_log(tmp_path) == []

"""End-to-end tests for SyncEngine against a temporary central repository.

Changes made "by another machine" are simulated by writing straight into
the central copy, which is what a ``git pull`` of the central repository
would do.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import replace
from pathlib import Path
from unittest.mock import patch

import pytest

from conftest import make_memory_dir

from minimem_sync.config import Settings
from minimem_sync.sync.engine import (
    SyncEngine,
    _copy_file as _real_copy,
    bidirectional_sync,
    get_sync_status,
    pull,
    push,
)
from minimem_sync.sync.errors import (
    CentralRepoError,
    NotInitializedError,
    SyncNotConfiguredError,
)
from minimem_sync.sync.hashing import hash_content
from minimem_sync.sync.history import read_sync_log
from minimem_sync.sync.local_config import DirectorySyncConfig, set_sync_section
from minimem_sync.sync.mappings import init_sync
from minimem_sync.sync.models import FileSyncStatus, SyncAction
from minimem_sync.sync.paths import conflicts_dir, state_path
from minimem_sync.sync.registry import find_mapping, read_registry
from minimem_sync.sync.state import build_sync_state, load_sync_state


def _write(root: Path, rel: str, text: str) -> None:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)


@pytest.fixture
def mapped(memory_dir: Path, settings: Settings) -> tuple[Path, Path]:
    """A memory directory mapped to ``work/``; returns (local, remote)."""
    result = init_sync(memory_dir, "work/", settings)
    return memory_dir, result.remote_dir


async def _synced(local: Path, settings: Settings, files: dict[str, str]):
    for rel, text in files.items():
        _write(local, rel, text)
    report = await bidirectional_sync(local, settings)
    assert report.success
    return report


# ---------------------------------------------------------------------------
# Preconditions
# ---------------------------------------------------------------------------


class TestPreconditions:
    async def test_not_initialized(self, tmp_path: Path, settings: Settings):
        with pytest.raises(NotInitializedError):
            await get_sync_status(tmp_path / "plain", settings)

    async def test_not_mapped(self, memory_dir: Path, settings: Settings):
        with pytest.raises(SyncNotConfiguredError):
            await push(memory_dir, settings)

    async def test_disabled_section_is_not_mapped(
        self, mapped, settings: Settings
    ):
        local, _ = mapped
        set_sync_section(local, DirectorySyncConfig(enabled=False, path="work/"))

        with pytest.raises(SyncNotConfiguredError):
            await get_sync_status(local, settings)

    async def test_no_central_repo(self, mapped, settings: Settings):
        local, _ = mapped

        with pytest.raises(CentralRepoError):
            await pull(local, replace(settings, central_repo=None))

    async def test_missing_central_repo(
        self, mapped, settings: Settings, tmp_path: Path
    ):
        local, _ = mapped
        gone = replace(settings, central_repo=tmp_path / "gone")

        with pytest.raises(CentralRepoError, match="does not exist"):
            await pull(local, gone)


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------


class TestStatus:
    async def test_reports_changes_without_writing(
        self, mapped, settings: Settings
    ):
        local, remote = mapped
        _write(local, "mine.md", "mine")
        _write(remote, "theirs.md", "theirs")
        state_before = state_path(local).read_bytes()

        status = await get_sync_status(local, settings)

        assert [(c.file, c.status) for c in status.changes] == [
            ("mine.md", FileSyncStatus.NEW_LOCAL),
            ("theirs.md", FileSyncStatus.NEW_REMOTE),
        ]
        assert status.central_path == "work/"
        assert status.tracked == 2
        assert status.last_sync is None
        assert state_path(local).read_bytes() == state_before
        assert not (local / "theirs.md").exists()
        assert not (remote / "mine.md").exists()


# ---------------------------------------------------------------------------
# Transfers
# ---------------------------------------------------------------------------


class TestPushPull:
    async def test_push_copies_new_local_files(
        self, mapped, settings: Settings
    ):
        local, remote = mapped
        _write(local, "notes/a.md", "alpha")

        report = await push(local, settings)

        assert [r.file for r in report.pushed] == ["notes/a.md"]
        assert (remote / "notes" / "a.md").read_text() == "alpha"
        info = load_sync_state(local, "work/").files["notes/a.md"]
        assert info.last_synced_hash == hash_content("alpha")

    async def test_push_does_not_pull(self, mapped, settings: Settings):
        local, remote = mapped
        _write(remote, "theirs.md", "theirs")

        report = await push(local, settings)

        assert report.pushed == []
        assert report.skipped[0].error == "central change, not pushed"
        assert not (local / "theirs.md").exists()

    async def test_pull_does_not_push(self, mapped, settings: Settings):
        local, remote = mapped
        _write(local, "mine.md", "mine")

        report = await pull(local, settings)

        assert report.skipped[0].error == "local change, not pulled"
        assert not (remote / "mine.md").exists()

    async def test_remote_edit_pulled_then_unchanged(
        self, mapped, settings: Settings
    ):
        local, remote = mapped
        await _synced(local, settings, {"a.md": "v1"})
        _write(remote, "a.md", "v2 from the other machine")

        status = await get_sync_status(local, settings)
        assert [c.status for c in status.changes] == [FileSyncStatus.REMOTE_ONLY]

        report = await pull(local, settings)
        assert [r.file for r in report.pulled] == ["a.md"]
        assert (local / "a.md").read_text() == "v2 from the other machine"

        status = await get_sync_status(local, settings)
        assert status.changes == []

    async def test_new_remote_file_seen_by_second_directory(
        self, mapped, settings: Settings, tmp_path: Path
    ):
        """A second directory mapped to the same path picks up the files."""
        local, _ = mapped
        await _synced(local, settings, {"shared.md": "shared"})
        other = make_memory_dir(tmp_path / "other")
        init_sync(other, "work", settings)

        status = await get_sync_status(other, settings)
        assert [(c.file, c.status) for c in status.changes] == [
            ("shared.md", FileSyncStatus.NEW_REMOTE)
        ]

        await pull(other, settings)
        assert (other / "shared.md").read_text() == "shared"
        assert (await get_sync_status(other, settings)).changes == []

    async def test_bidirectional(self, mapped, settings: Settings):
        local, remote = mapped
        _write(local, "mine.md", "mine")
        _write(remote, "theirs.md", "theirs")

        report = await bidirectional_sync(local, settings)

        assert report.operation == "both"
        assert len(report.pushed) == 1
        assert len(report.pulled) == 1
        assert (remote / "mine.md").exists()
        assert (local / "theirs.md").exists()

    async def test_excluded_files_ignored(self, mapped, settings: Settings):
        local, remote = mapped
        init_sync(local, "work/", settings, exclude=["drafts/**"])
        _write(local, "drafts/wip.md", "wip")
        _write(local, "done.md", "done")

        report = await push(local, settings)

        assert [r.file for r in report.results] == ["done.md"]
        assert not (remote / "drafts").exists()


# ---------------------------------------------------------------------------
# Conflicts
# ---------------------------------------------------------------------------


class TestConflicts:
    async def _diverge(self, local: Path, remote: Path, settings: Settings):
        await _synced(local, settings, {"a.md": "base\n"})
        _write(local, "a.md", "local edit\n")
        _write(remote, "a.md", "remote edit\n")

    async def test_manual_quarantines_both_versions(
        self, mapped, settings: Settings
    ):
        local, remote = mapped
        await self._diverge(local, remote, settings)

        report = await bidirectional_sync(local, settings)

        assert not report.success
        assert [r.file for r in report.conflicts] == ["a.md"]
        assert "resolve manually" in report.conflicts[0].error
        assert (local / "a.md").read_text() == "local edit\n"
        assert (remote / "a.md").read_text() == "remote edit\n"
        [quarantine] = list(conflicts_dir(local).iterdir())
        assert (quarantine / "a.md.local").read_text() == "local edit\n"
        assert (quarantine / "a.md.remote").read_text() == "remote edit\n"
        info = load_sync_state(local, "work/").files["a.md"]
        assert info.last_synced_hash == hash_content("base\n")

    async def test_first_sync_with_different_content_conflicts(
        self, mapped, settings: Settings
    ):
        local, remote = mapped
        _write(local, "a.md", "mine")
        _write(remote, "a.md", "theirs")

        report = await bidirectional_sync(local, settings)

        assert report.conflicts[0].status == FileSyncStatus.CONFLICT

    async def test_keep_both_writes_marker_document(
        self, mapped, settings: Settings
    ):
        local, remote = mapped
        await self._diverge(local, remote, settings)

        report = await bidirectional_sync(
            local, replace(settings, conflict_strategy="keep-both")
        )

        assert report.success
        assert [r.file for r in report.merged] == ["a.md"]
        merged = (local / "a.md").read_text()
        assert merged == (remote / "a.md").read_text()
        assert merged.startswith("<<<<<<< LOCAL (")
        assert "local edit\n=======\nremote edit\n>>>>>>> REMOTE (" in merged
        assert (await get_sync_status(local, settings)).changes == []

    async def test_directory_strategy_beats_settings(
        self, mapped, settings: Settings
    ):
        local, remote = mapped
        await self._diverge(local, remote, settings)
        set_sync_section(
            local,
            DirectorySyncConfig(
                enabled=True, path="work/", conflict_strategy="keep-both"
            ),
        )

        report = await bidirectional_sync(local, settings)

        assert [r.action for r in report.results] == [SyncAction.KEEP_BOTH]

    async def test_force_push_overwrites_central(
        self, mapped, settings: Settings
    ):
        local, remote = mapped
        await self._diverge(local, remote, settings)

        report = await push(local, settings, force=True)

        assert report.success
        assert (remote / "a.md").read_text() == "local edit\n"
        assert not conflicts_dir(local).exists()

    async def test_force_pull_overwrites_local(
        self, mapped, settings: Settings
    ):
        local, remote = mapped
        await self._diverge(local, remote, settings)

        await pull(local, settings, force=True)

        assert (local / "a.md").read_text() == "remote edit\n"

    async def test_force_ignored_for_bidirectional(
        self, mapped, settings: Settings
    ):
        local, remote = mapped
        await self._diverge(local, remote, settings)

        report = await SyncEngine(local, settings).run("both", force=True)

        assert report.conflicts

    async def test_force_push_after_local_delete_keeps_central(
        self, mapped, settings: Settings
    ):
        local, remote = mapped
        await _synced(local, settings, {"a.md": "v1"})
        (local / "a.md").unlink()
        _write(remote, "a.md", "v2")

        report = await push(local, settings, force=True)

        assert report.success
        [result] = report.results
        assert result.status == FileSyncStatus.CONFLICT
        assert result.action == SyncAction.SKIP
        assert result.error == "deleted locally; deletion not propagated"
        assert (remote / "a.md").read_text() == "v2"
        assert not (local / "a.md").exists()

    async def test_force_pull_after_central_delete_keeps_local(
        self, mapped, settings: Settings
    ):
        local, remote = mapped
        await _synced(local, settings, {"a.md": "v1"})
        (remote / "a.md").unlink()
        _write(local, "a.md", "v2")

        report = await pull(local, settings, force=True)

        assert report.success
        assert report.skipped[0].error == "deleted centrally; deletion not propagated"
        assert (local / "a.md").read_text() == "v2"
        assert not (remote / "a.md").exists()

    async def test_unknown_directory_strategy_falls_back(
        self, mapped, settings: Settings
    ):
        local, remote = mapped
        set_sync_section(
            local,
            DirectorySyncConfig(enabled=True, path="work/"),
        )
        config_file = local / ".minimem" / "config.json"
        document = json.loads(config_file.read_text())
        document["sync"]["conflictStrategy"] = "keepboth"
        config_file.write_text(json.dumps(document))
        _write(local, "a.md", "mine")
        _write(remote, "a.md", "theirs")

        report = await bidirectional_sync(
            local, replace(settings, conflict_strategy="keep-both")
        )

        assert [r.action for r in report.results] == [SyncAction.KEEP_BOTH]


# ---------------------------------------------------------------------------
# State housekeeping
# ---------------------------------------------------------------------------


class TestHousekeeping:
    async def test_deletions_not_propagated(self, mapped, settings: Settings):
        local, remote = mapped
        await _synced(local, settings, {"a.md": "a"})
        (local / "a.md").unlink()

        report = await bidirectional_sync(local, settings)

        assert report.success
        assert report.results[0].status == FileSyncStatus.DELETED_LOCAL
        assert report.results[0].error == "deletion not propagated"
        assert (remote / "a.md").exists()
        assert not (local / "a.md").exists()

    async def test_identical_files_adopted_as_synced(
        self, mapped, settings: Settings
    ):
        local, remote = mapped
        _write(local, "a.md", "same")
        _write(remote, "a.md", "same")

        report = await bidirectional_sync(local, settings)

        assert report.results == []
        info = load_sync_state(local, "work/").files["a.md"]
        assert info.last_synced_hash == hash_content("same")

    async def test_files_gone_everywhere_forgotten(
        self, mapped, settings: Settings
    ):
        local, remote = mapped
        await _synced(local, settings, {"a.md": "a"})
        (local / "a.md").unlink()
        (remote / "a.md").unlink()

        await bidirectional_sync(local, settings)

        assert load_sync_state(local, "work/").files == {}

    async def test_registry_and_log_updated(self, mapped, settings: Settings):
        local, _ = mapped
        central = settings.central_repo
        before = find_mapping(read_registry(central), "work/", "machine-a")

        report = await _synced(local, settings, {"a.md": "a"})

        after = find_mapping(read_registry(central), "work/", "machine-a")
        assert after.last_sync >= before.last_sync
        [entry] = read_sync_log(local)
        assert entry["operation"] == "both"
        assert entry["pushed"] == 1
        assert entry["success"] is True
        assert load_sync_state(local, "work/").last_sync == report.completed_at

    async def test_dry_run_writes_nothing(self, mapped, settings: Settings):
        local, remote = mapped
        _write(local, "mine.md", "mine")
        _write(remote, "theirs.md", "theirs")
        state_before = state_path(local).read_bytes()
        registry_before = json.loads(
            (settings.central_repo / ".minimem-registry.json").read_text()
        )

        report = await bidirectional_sync(local, settings, dry_run=True)

        assert report.dry_run
        assert {r.action for r in report.results} == {
            SyncAction.PUSH,
            SyncAction.PULL,
        }
        assert not (remote / "mine.md").exists()
        assert not (local / "theirs.md").exists()
        assert state_path(local).read_bytes() == state_before
        assert read_sync_log(local) == []
        assert (
            json.loads(
                (settings.central_repo / ".minimem-registry.json").read_text()
            )
            == registry_before
        )

    async def test_copy_error_reported_per_file(
        self, mapped, settings: Settings
    ):
        local, remote = mapped
        _write(local, "a.md", "a")
        _write(local, "b.md", "b")
        def _flaky(source: Path, target: Path) -> str:
            if source.name == "a.md":
                raise PermissionError("read-only")
            return _real_copy(source, target)

        with patch("minimem_sync.sync.engine._copy_file", side_effect=_flaky):
            report = await push(local, settings)

        assert not report.success
        assert [r.file for r in report.errors] == ["a.md"]
        assert "read-only" in report.errors[0].error
        assert [r.file for r in report.pushed] == ["b.md"]
        assert load_sync_state(local, "work/").files["a.md"].last_synced_hash == ""


# ---------------------------------------------------------------------------
# Two-way policy
# ---------------------------------------------------------------------------


class TestTwoWayPolicy:
    async def test_direction_picks_winner(self, mapped, settings: Settings):
        local, remote = mapped
        two_way = replace(settings, policy="two-way")
        await _synced(local, two_way, {"a.md": "base"})
        _write(local, "a.md", "local")
        _write(remote, "a.md", "remote")

        status = await get_sync_status(local, two_way)
        assert [c.status for c in status.changes] == [FileSyncStatus.MODIFIED]

        report = await push(local, two_way)
        assert report.success
        assert (remote / "a.md").read_text() == "local"

    async def test_bidirectional_skips_modified(
        self, mapped, settings: Settings
    ):
        local, remote = mapped
        two_way = replace(settings, policy="two-way")
        _write(local, "a.md", "local")
        _write(remote, "a.md", "remote")

        report = await bidirectional_sync(local, two_way)

        assert report.success
        assert report.skipped[0].error == "contents differ; run push or pull"


# ---------------------------------------------------------------------------
# Hashing limit
# ---------------------------------------------------------------------------


class TestHashingLimit:
    def test_limit_is_scoped_to_each_event_loop(
        self, mapped, settings: Settings
    ):
        local, remote = mapped
        for i in range(30):
            _write(local, f"n{i:02d}.md", str(i))
        limited = replace(settings, max_parallel_hashes=1)

        status = asyncio.run(SyncEngine(local, limited).status())
        _, changes = asyncio.run(
            build_sync_state(local, remote, "work/", max_parallel=1)
        )

        assert len(status.changes) == 30
        assert len(changes) == 30

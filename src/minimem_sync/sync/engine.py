"""Sync engine: push, pull and bidirectional sync of one memory directory.

The ``SyncEngine`` ties together configuration, state, the build pass and
the resolution policy. One run:

1. Checks the directory is initialized and mapped, and the central
   repository is usable (typed ``SyncError`` otherwise).
2. Loads the persisted sync state.
3. Runs the build pass to classify every path.
4. Records a base for paths already identical on both sides, and forgets
   paths gone from both sides.
5. Applies each change in the requested direction; conflicts are
   quarantined, forced, or kept both, per configuration.
6. Persists state once, refreshes the registry ``lastSync`` and appends to
   ``.minimem/sync.log`` (skipped in dry-run).

Error handling is per file: one failed copy does not abort the run.
Deletions are detected and reported but never propagated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from minimem_sync.config import Settings
from minimem_sync.core.async_utils import run_sync
from minimem_sync.sync.conflicts import (
    conflict_timestamp,
    keep_both_content,
    quarantine_conflict,
)
from minimem_sync.sync.detection import get_directory_info
from minimem_sync.sync.errors import NotInitializedError, SyncNotConfiguredError
from minimem_sync.sync.hashing import hash_content
from minimem_sync.sync.history import append_sync_log, log_entry_from_report
from minimem_sync.sync.local_config import (
    DirectorySyncConfig,
    get_sync_config,
    is_initialized,
)
from minimem_sync.sync.mappings import require_central_repo
from minimem_sync.sync.models import (
    DirectoryInfo,
    FileChange,
    FileSyncStatus,
    SyncAction,
    SyncReport,
    SyncResult,
    SyncState,
    utc_now,
)
from minimem_sync.sync.policy import ResolutionPolicy, create_policy
from minimem_sync.sync.registry import (
    find_mapping,
    read_registry,
    update_last_sync,
    write_registry,
)
from minimem_sync.sync.state import (
    build_sync_state,
    load_sync_state,
    remove_file_from_sync_state,
    save_sync_state,
    update_sync_state_after_sync,
)
from minimem_sync.sync.storage import write_bytes_atomic

logger = logging.getLogger(__name__)

Direction = Literal["push", "pull", "both"]

_PUSHABLE = (FileSyncStatus.NEW_LOCAL, FileSyncStatus.LOCAL_ONLY)
_PULLABLE = (FileSyncStatus.NEW_REMOTE, FileSyncStatus.REMOTE_ONLY)


@dataclass
class SyncStatusReport:
    """Result of a read-only diff."""

    memory_dir: str
    central_path: str
    remote_dir: str
    directory: DirectoryInfo
    last_sync: str | None
    tracked: int
    changes: list[FileChange] = field(default_factory=list)


def _read_bytes(path: Path) -> bytes | None:
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return None


def _copy_file(source: Path, target: Path) -> str:
    """Atomically copy *source* over *target*; hash of the copied bytes."""
    data = source.read_bytes()
    write_bytes_atomic(target, data)
    return hash_content(data)


class SyncEngine:
    """Drive sync operations for one memory directory.

    Args:
        memory_dir: Local memory directory.
        settings: Process settings (central repo, machine id, policy).
        policy: Override the policy named in *settings*.
    """

    def __init__(
        self,
        memory_dir: Path,
        settings: Settings,
        policy: ResolutionPolicy | None = None,
    ) -> None:
        self.memory_dir = Path(memory_dir).expanduser().resolve()
        self.settings = settings
        self.policy = policy or create_policy(settings.policy)

    # ------------------------------------------------------------------
    # Preconditions
    # ------------------------------------------------------------------

    def _load_context(self) -> tuple[DirectorySyncConfig, Path, Path]:
        """Sync section, central repo and remote dir, or a ``SyncError``."""
        if not is_initialized(self.memory_dir):
            raise NotInitializedError(str(self.memory_dir))
        config = get_sync_config(self.memory_dir)
        if not config.enabled or not config.path:
            raise SyncNotConfiguredError(str(self.memory_dir))
        central_repo, _ = require_central_repo(self.settings)
        return config, central_repo, central_repo / config.path

    async def _diff(
        self, config: DirectorySyncConfig, remote_dir: Path
    ) -> tuple[SyncState, list[FileChange]]:
        existing = load_sync_state(self.memory_dir, config.path or "")
        return await build_sync_state(
            self.memory_dir,
            remote_dir,
            config.path or "",
            include=config.include,
            exclude=config.exclude,
            existing_state=existing,
            policy=self.policy,
            max_parallel=self.settings.max_parallel_hashes,
        )

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def status(self) -> SyncStatusReport:
        """Classify every path without changing anything on disk."""
        config, _, remote_dir = self._load_context()
        state, changes = await self._diff(config, remote_dir)
        return SyncStatusReport(
            memory_dir=str(self.memory_dir),
            central_path=config.path or "",
            remote_dir=str(remote_dir),
            directory=get_directory_info(self.memory_dir),
            last_sync=state.last_sync,
            tracked=sum(
                1 for i in state.files.values() if i.local_hash or i.remote_hash
            ),
            changes=changes,
        )

    async def run(
        self,
        direction: Direction = "both",
        force: bool = False,
        dry_run: bool = False,
    ) -> SyncReport:
        """Execute one sync operation.

        Args:
            direction: ``"push"`` (local to central), ``"pull"`` (central
                to local) or ``"both"``.
            force: In push or pull, overwrite the other side of conflicts.
            dry_run: Compute and report actions without writing anything.

        Returns:
            A ``SyncReport``; ``report.success`` is False when any file
            failed or remained in conflict.

        Raises:
            SyncError: Directory not initialized or mapped, or no usable
                central repository.
        """
        started_at = utc_now()
        config, central_repo, remote_dir = self._load_context()
        strategy = config.conflict_strategy or self.settings.conflict_strategy
        state, changes = await self._diff(config, remote_dir)
        self._settle_unchanged(state)

        logger.info(
            "%s %s <-> %s: %d change(s)%s",
            direction,
            self.memory_dir,
            remote_dir,
            len(changes),
            " (dry run)" if dry_run else "",
        )

        stamp = conflict_timestamp()
        results: list[SyncResult] = []
        for change in changes:
            try:
                result = await self._apply(
                    change,
                    direction,
                    remote_dir,
                    state,
                    force=force,
                    dry_run=dry_run,
                    strategy=strategy,
                    stamp=stamp,
                )
            except OSError as exc:
                logger.error("Error syncing %s: %s", change.file, exc)
                result = SyncResult(
                    file=change.file,
                    status=change.status,
                    action=SyncAction.SKIP,
                    success=False,
                    error=str(exc),
                )
            results.append(result)

        report = SyncReport(
            operation=direction,
            memory_dir=str(self.memory_dir),
            central_path=config.path or "",
            dry_run=dry_run,
            results=results,
            started_at=started_at,
            completed_at=utc_now(),
        )

        if not dry_run:
            state.last_sync = report.completed_at
            save_sync_state(self.memory_dir, state)
            self._touch_registry(central_repo, config.path or "")
            append_sync_log(self.memory_dir, log_entry_from_report(report))
        return report

    # ------------------------------------------------------------------
    # State housekeeping
    # ------------------------------------------------------------------

    @staticmethod
    def _settle_unchanged(state: SyncState) -> None:
        """Adopt identical copies as synced; drop paths gone everywhere."""
        for rel, info in list(state.files.items()):
            if not info.local_hash and not info.remote_hash:
                remove_file_from_sync_state(state, rel)
            elif (
                info.local_hash == info.remote_hash
                and info.last_synced_hash != info.local_hash
            ):
                update_sync_state_after_sync(state, rel, info.local_hash)

    def _touch_registry(self, central_repo: Path, central_path: str) -> None:
        registry = read_registry(central_repo)
        if find_mapping(registry, central_path, self.settings.machine_id) is None:
            logger.warning(
                "No registry mapping for %s on %s; run 'init' again",
                central_path,
                self.settings.machine_id,
            )
            return
        write_registry(
            central_repo,
            update_last_sync(registry, central_path, self.settings.machine_id),
        )

    # ------------------------------------------------------------------
    # Per-file actions
    # ------------------------------------------------------------------

    async def _apply(
        self,
        change: FileChange,
        direction: Direction,
        remote_dir: Path,
        state: SyncState,
        *,
        force: bool,
        dry_run: bool,
        strategy: str,
        stamp: str,
    ) -> SyncResult:
        status = change.status
        pushes = direction in ("push", "both")
        pulls = direction in ("pull", "both")

        if status in _PUSHABLE or (
            status == FileSyncStatus.MODIFIED and direction == "push"
        ):
            if not pushes:
                return self._skip(change, "local change, not pulled")
            return await self._transfer(
                change, SyncAction.PUSH, remote_dir, state, dry_run
            )

        if status in _PULLABLE or (
            status == FileSyncStatus.MODIFIED and direction == "pull"
        ):
            if not pulls:
                return self._skip(change, "central change, not pushed")
            return await self._transfer(
                change, SyncAction.PULL, remote_dir, state, dry_run
            )

        if status == FileSyncStatus.MODIFIED:
            return self._skip(change, "contents differ; run push or pull")

        if status in (FileSyncStatus.DELETED_LOCAL, FileSyncStatus.DELETED_REMOTE):
            logger.info("Deletion not propagated for %s (%s)", change.file, status.value)
            return self._skip(change, "deletion not propagated")

        if status == FileSyncStatus.CONFLICT:
            return await self._resolve_conflict(
                change,
                direction,
                remote_dir,
                state,
                force=force,
                dry_run=dry_run,
                strategy=strategy,
                stamp=stamp,
            )

        return self._skip(change, None)

    @staticmethod
    def _skip(change: FileChange, reason: str | None) -> SyncResult:
        return SyncResult(
            file=change.file,
            status=change.status,
            action=SyncAction.SKIP,
            error=reason,
        )

    async def _transfer(
        self,
        change: FileChange,
        action: SyncAction,
        remote_dir: Path,
        state: SyncState,
        dry_run: bool,
    ) -> SyncResult:
        local = self.memory_dir / change.file
        remote = remote_dir / change.file
        source, target = (local, remote) if action == SyncAction.PUSH else (remote, local)
        if not dry_run:
            copied = await run_sync(_copy_file, source, target)
            update_sync_state_after_sync(state, change.file, copied)
            logger.debug("%s %s", action.value, change.file)
        return SyncResult(file=change.file, status=change.status, action=action)

    async def _resolve_conflict(
        self,
        change: FileChange,
        direction: Direction,
        remote_dir: Path,
        state: SyncState,
        *,
        force: bool,
        dry_run: bool,
        strategy: str,
        stamp: str,
    ) -> SyncResult:
        if force and direction in ("push", "pull"):
            action = SyncAction.PUSH if direction == "push" else SyncAction.PULL
            winner = change.local_hash if direction == "push" else change.remote_hash
            if not winner:
                # The forced side deleted the file; deletions never travel.
                side = "locally" if direction == "push" else "centrally"
                logger.info(
                    "Deletion not propagated for %s (deleted %s)", change.file, side
                )
                return self._skip(change, f"deleted {side}; deletion not propagated")
            return await self._transfer(
                change, action, remote_dir, state, dry_run
            )

        local = self.memory_dir / change.file
        remote = remote_dir / change.file
        local_bytes = await run_sync(_read_bytes, local)
        remote_bytes = await run_sync(_read_bytes, remote)

        if strategy == "keep-both":
            if not dry_run:
                merged = keep_both_content(
                    local_bytes or b"", remote_bytes or b"", stamp
                )
                await run_sync(write_bytes_atomic, local, merged)
                await run_sync(write_bytes_atomic, remote, merged)
                update_sync_state_after_sync(
                    state, change.file, hash_content(merged)
                )
            logger.info("Kept both versions of %s", change.file)
            return SyncResult(
                file=change.file,
                status=change.status,
                action=SyncAction.KEEP_BOTH,
            )

        if not dry_run:
            await run_sync(
                quarantine_conflict,
                self.memory_dir,
                change.file,
                local_bytes,
                remote_bytes,
                stamp,
            )
        logger.warning("Conflict in %s: changed on both sides", change.file)
        return SyncResult(
            file=change.file,
            status=change.status,
            action=SyncAction.CONFLICT,
            success=False,
            error="changed locally and centrally; resolve manually or use --force",
        )


# ---------------------------------------------------------------------------
# Convenience wrappers
# ---------------------------------------------------------------------------


async def get_sync_status(memory_dir: Path, settings: Settings) -> SyncStatusReport:
    return await SyncEngine(memory_dir, settings).status()


async def push(
    memory_dir: Path,
    settings: Settings,
    force: bool = False,
    dry_run: bool = False,
) -> SyncReport:
    return await SyncEngine(memory_dir, settings).run("push", force, dry_run)


async def pull(
    memory_dir: Path,
    settings: Settings,
    force: bool = False,
    dry_run: bool = False,
) -> SyncReport:
    return await SyncEngine(memory_dir, settings).run("pull", force, dry_run)


async def bidirectional_sync(
    memory_dir: Path,
    settings: Settings,
    dry_run: bool = False,
) -> SyncReport:
    return await SyncEngine(memory_dir, settings).run("both", False, dry_run)

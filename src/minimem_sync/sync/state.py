"""Sync state tracker.

Each memory directory owns ``.minimem/sync-state.json``, recording for
every tracked file the last observed local hash, remote hash, and the
hash both sides held after the last completed sync of that file (the
three-way base).

Key design choices:

* **Always reload, write once** -- the state is loaded at the start of an
  operation, mutated in memory, and persisted once at the end with a temp
  file + ``os.replace()``. An interrupted run leaves the previous state.
* **Scans never move the base** -- ``build_sync_state`` refreshes local and
  remote hashes but carries ``lastSyncedHash`` forward untouched. Only
  ``update_sync_state_after_sync`` sets it.
* **Lenient loading** -- a missing or malformed state file yields a fresh
  empty state. Older layouts are upgraded one way to version 3.
"""

from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from pydantic import ValidationError

from minimem_sync.core.async_utils import hashing_limiter, run_sync, run_sync_limited
from minimem_sync.sync.hashing import hash_file
from minimem_sync.sync.models import (
    STATE_VERSION,
    FileChange,
    FileHashInfo,
    FileSyncStatus,
    SyncState,
    utc_now,
)
from minimem_sync.sync.policy import (
    ResolutionPolicy,
    ThreeWayPolicy,
)
from minimem_sync.sync.paths import list_syncable_files, state_path
from minimem_sync.sync.storage import read_json, write_json_atomic

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


def _upgrade_v2_entry(entry: dict[str, Any]) -> dict[str, Any]:
    # The two-way layout only recorded matching hashes after a completed
    # sync, so a matching pair is the base.
    upgraded = dict(entry)
    local = entry.get("localHash") or ""
    remote = entry.get("remoteHash") or ""
    upgraded["lastSyncedHash"] = local if local and local == remote else ""
    return upgraded


def migrate_state_document(document: dict[str, Any]) -> dict[str, Any]:
    """Upgrade a raw state document to the current layout.

    * version 1 (three-way): fields unchanged, version bumped.
    * version 2 (two-way, no ``lastSyncedHash``): base seeded from entries
      whose local and remote hashes match.
    * version 3 or newer: returned as is, never downgraded.

    A numeric string such as ``"2"`` counts as that version.

    Raises:
        ValueError: ``version`` is not an integer.
    """
    raw = document.get("version", 1)
    try:
        if isinstance(raw, bool) or not isinstance(raw, (int, str)):
            raise TypeError(type(raw).__name__)
        version = int(raw)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Unsupported sync state version {raw!r}") from e
    if version >= STATE_VERSION:
        return document if raw == version else {**document, "version": version}

    migrated = dict(document)
    if version == 2:
        migrated["files"] = {
            path: _upgrade_v2_entry(entry) if isinstance(entry, dict) else entry
            for path, entry in document.get("files", {}).items()
        }
    migrated["version"] = STATE_VERSION
    logger.info("Migrated sync state from version %s to %s", version, STATE_VERSION)
    return migrated


def create_sync_state(central_path: str) -> SyncState:
    return SyncState(central_path=central_path)


def load_sync_state(memory_dir: Path, central_path: str) -> SyncState:
    """Load the persisted state, or a fresh one pointed at *central_path*."""
    path = state_path(memory_dir)
    document = read_json(path)
    if not isinstance(document, dict) or not isinstance(
        document.get("files"), dict
    ):
        if document is not None:
            logger.warning("Malformed sync state %s, starting fresh", path)
        return create_sync_state(central_path)

    try:
        return SyncState.model_validate(migrate_state_document(document))
    except (ValidationError, ValueError) as e:
        logger.warning("Invalid sync state %s, starting fresh: %s", path, e)
        return create_sync_state(central_path)


def save_sync_state(memory_dir: Path, state: SyncState) -> None:
    """Persist *state* atomically under ``.minimem/``."""
    write_json_atomic(
        state_path(memory_dir), state.model_dump(by_alias=True)
    )
    logger.debug(
        "Saved sync state for %s (%d files)", memory_dir, len(state.files)
    )


# ---------------------------------------------------------------------------
# Build pass
# ---------------------------------------------------------------------------


def _observe(path: Path) -> tuple[str, float] | None:
    """Hash and mtime of *path*, or ``None`` if it vanished."""
    try:
        mtime = os.stat(path).st_mtime
        return hash_file(path), mtime
    except FileNotFoundError:
        return None


async def _observe_pair(
    local_dir: Path,
    remote_dir: Path,
    rel: str,
    in_local: bool,
    in_remote: bool,
    limiter: asyncio.Semaphore | None,
) -> tuple[tuple[str, float] | None, tuple[str, float] | None]:
    async def _side(root: Path, present: bool):
        if not present:
            return None
        return await run_sync_limited(limiter, _observe, root / rel)

    local, remote = await asyncio.gather(
        _side(local_dir, in_local), _side(remote_dir, in_remote)
    )
    return local, remote


def _stamp(*observations: tuple[str, float] | None) -> str:
    mtimes = [o[1] for o in observations if o is not None]
    if not mtimes:
        return utc_now()
    return datetime.fromtimestamp(max(mtimes), tz=timezone.utc).isoformat()


async def build_sync_state(
    local_dir: Path,
    remote_dir: Path,
    central_path: str,
    include: Iterable[str] | None = None,
    exclude: Iterable[str] | None = None,
    existing_state: SyncState | None = None,
    policy: ResolutionPolicy | None = None,
    max_parallel: int | None = None,
) -> tuple[SyncState, list[FileChange]]:
    """Diff the local directory against its central copy.

    Walks both trees concurrently, hashes the two copies of every path
    concurrently, and classifies each path against its recorded base.

    Args:
        local_dir: Local memory directory.
        remote_dir: ``<central repo>/<central path>``; may not exist yet.
        central_path: Mapped central path stored in the returned state.
        include: Globs selecting files (default ``["**/*.md"]``).
        exclude: Globs dropping files.
        existing_state: Previously persisted state, source of the bases.
        policy: Classifier to use; three-way when omitted.
        max_parallel: Most files hashed at once; unbounded when None.

    Returns:
        ``(state, changes)``: a new state with refreshed hashes and
        preserved bases, plus every path whose status is not unchanged,
        sorted by path. Records of paths gone from both sides are kept
        with empty hashes so a caller can drop them explicitly.
    """
    classifier = policy or ThreeWayPolicy()
    limiter = hashing_limiter(max_parallel)
    include = list(include) if include is not None else None
    exclude = list(exclude) if exclude is not None else None
    previous = existing_state.files if existing_state else {}

    local_files, remote_files = await asyncio.gather(
        run_sync(list_syncable_files, local_dir, include, exclude),
        run_sync(list_syncable_files, remote_dir, include, exclude),
    )
    local_set, remote_set = set(local_files), set(remote_files)
    paths = sorted(local_set | remote_set)
    logger.debug(
        "Build pass: %d local, %d remote, %d distinct path(s)",
        len(local_set),
        len(remote_set),
        len(paths),
    )

    observations = await asyncio.gather(
        *(
            _observe_pair(
                local_dir,
                remote_dir,
                rel,
                rel in local_set,
                rel in remote_set,
                limiter,
            )
            for rel in paths
        )
    )

    files: dict[str, FileHashInfo] = {}
    changes: list[FileChange] = []
    for rel, (local, remote) in zip(paths, observations):
        local_hash = local[0] if local else None
        remote_hash = remote[0] if remote else None
        base = previous[rel].last_synced_hash if rel in previous else ""
        files[rel] = FileHashInfo(
            local_hash=local_hash or "",
            remote_hash=remote_hash or "",
            last_synced_hash=base,
            last_modified=_stamp(local, remote),
        )
        status = classifier.classify(local_hash, remote_hash, base or None)
        if status != FileSyncStatus.UNCHANGED:
            changes.append(
                FileChange(
                    file=rel,
                    status=status,
                    local_hash=local_hash,
                    remote_hash=remote_hash,
                    last_synced_hash=base or None,
                )
            )

    for rel, info in previous.items():
        if rel not in files:
            files[rel] = info.model_copy(
                update={"local_hash": "", "remote_hash": ""}
            )

    base_state = existing_state or create_sync_state(central_path)
    state = base_state.model_copy(
        update={"central_path": central_path, "files": files}
    )
    return state, changes


# ---------------------------------------------------------------------------
# Completion updates
# ---------------------------------------------------------------------------


def update_sync_state_after_sync(
    state: SyncState, file_path: str, content_hash: str
) -> SyncState:
    """Record that both sides of *file_path* now hold *content_hash*.

    Mutates and returns *state*; also refreshes ``lastSync``.
    """
    now = utc_now()
    state.files[file_path] = FileHashInfo(
        local_hash=content_hash,
        remote_hash=content_hash,
        last_synced_hash=content_hash,
        last_modified=now,
    )
    state.last_sync = now
    return state


def remove_file_from_sync_state(state: SyncState, file_path: str) -> SyncState:
    """Forget *file_path*. Mutates and returns *state*."""
    state.files.pop(file_path, None)
    return state

"""Synchronisation of memory directories through a central repository.

Public API for keeping a directory of plain-text memory files in step with
its copy inside a shared central git working tree.

Architecture
------------
Change detection is **three-way**: each file's local and central hashes
are compared against the hash both sides held after the file's last
completed sync. A file changed on one side only moves in that direction;
a file changed differently on both sides is a conflict and is never
merged automatically. A simpler two-way policy (direction decides, no
conflicts) can be selected instead.

Modules:

- ``hashing``    -- SHA-256 of file bytes or buffers.
- ``paths``      -- ``.minimem/`` layout and glob-based file listing.
- ``detection``  -- project-bound vs standalone classification.
- ``central``    -- bootstrap and validate the central repository.
- ``registry``   -- machine/path mappings with collision detection.
- ``state``      -- sync state persistence, classification, build pass.
- ``policy``     -- ``ThreeWayPolicy`` / ``TwoWayPolicy`` strategies.
- ``mappings``   -- ``init_sync`` / ``remove_sync`` / ``list_mappings``.
- ``engine``     -- ``SyncEngine``: push, pull and bidirectional sync.
- ``conflicts``  -- quarantine and keep-both handling.
- ``history``    -- ``.minimem/sync.log`` operation history.
- ``validation`` -- registry health checks.
- ``reporter``   -- human-readable and JSON report formatting.

Usage example
-------------
::

    import asyncio
    from pathlib import Path
    from minimem_sync.config import load_settings
    from minimem_sync.sync import SyncEngine, format_sync_report

    settings = load_settings(central_repo="~/memory-central")
    engine = SyncEngine(Path("~/notes"), settings)

    preview = asyncio.run(engine.run("both", dry_run=True))
    print(format_sync_report(preview))
"""

from .engine import SyncEngine, SyncStatusReport
from .errors import (
    CentralRepoError,
    CollisionError,
    NotInitializedError,
    SyncError,
    SyncNotConfiguredError,
)
from .models import (
    FileChange,
    FileHashInfo,
    FileSyncStatus,
    SyncAction,
    SyncReport,
    SyncResult,
    SyncState,
)
from .reporter import (
    format_dry_run_preview,
    format_status,
    format_sync_report,
    report_to_json,
    status_to_json,
)

__all__ = [
    "CentralRepoError",
    "CollisionError",
    "FileChange",
    "FileHashInfo",
    "FileSyncStatus",
    "NotInitializedError",
    "SyncAction",
    "SyncEngine",
    "SyncError",
    "SyncNotConfiguredError",
    "SyncReport",
    "SyncResult",
    "SyncState",
    "SyncStatusReport",
    "format_dry_run_preview",
    "format_status",
    "format_sync_report",
    "report_to_json",
    "status_to_json",
]

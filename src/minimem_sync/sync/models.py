"""Pydantic models for the sync subsystem.

Persisted documents (``SyncState``, ``Registry``) serialise with camelCase
keys through an alias generator, so ``model_dump(by_alias=True)`` produces
the on-disk layout while Python code uses snake_case attributes.

- ``FileSyncStatus``: per-file classification.
- ``FileHashInfo`` / ``SyncState``: per-directory sync bookkeeping.
- ``RegistryMapping`` / ``Registry``: central path ownership.
- ``DirectoryInfo``: derived directory classification.
- ``FileChange``: one reported difference from a build pass.
- ``SyncAction`` / ``SyncResult`` / ``SyncReport``: outcome of push/pull.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

STATE_VERSION = 3
REGISTRY_VERSION = 1


def utc_now() -> str:
    """Current UTC time as an ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()


class FileSyncStatus(str, Enum):
    """Classification of one path across local and central copies."""

    UNCHANGED = "unchanged"
    NEW_LOCAL = "new-local"
    NEW_REMOTE = "new-remote"
    LOCAL_ONLY = "local-only"
    REMOTE_ONLY = "remote-only"
    DELETED_LOCAL = "deleted-local"
    DELETED_REMOTE = "deleted-remote"
    CONFLICT = "conflict"
    # Two-way policy only: contents differ, direction picks the winner.
    MODIFIED = "modified"


class DirectoryType(str, Enum):
    PROJECT_BOUND = "project-bound"
    STANDALONE = "standalone"


class CollisionCheck(str, Enum):
    OK = "ok"
    COLLISION = "collision"


_CAMEL = {"alias_generator": to_camel, "populate_by_name": True}


class FileHashInfo(BaseModel):
    """Hash history of one tracked file.

    Attributes:
        local_hash: Digest of the local copy, empty if absent.
        remote_hash: Digest of the central copy, empty if absent.
        last_synced_hash: Digest both sides held at the end of the last
            completed sync of this file; empty if never synced.
        last_modified: ISO 8601 time of the most recent observation.
    """

    local_hash: str = ""
    remote_hash: str = ""
    last_synced_hash: str = ""
    last_modified: str = Field(default_factory=utc_now)

    model_config = _CAMEL


class SyncState(BaseModel):
    """Durable sync record of one local directory."""

    version: int = STATE_VERSION
    last_sync: str | None = None
    central_path: str = ""
    files: dict[str, FileHashInfo] = Field(default_factory=dict)

    model_config = _CAMEL


class RegistryMapping(BaseModel):
    """One ``central path <-> local directory <-> machine`` association."""

    path: str
    local_path: str
    machine_id: str
    last_sync: str = Field(default_factory=utc_now)

    model_config = {**_CAMEL, "frozen": True}


class Registry(BaseModel):
    """All mappings held by a central repository."""

    version: int = REGISTRY_VERSION
    mappings: list[RegistryMapping] = Field(default_factory=list)

    model_config = {**_CAMEL, "frozen": True}


class DirectoryInfo(BaseModel):
    """Derived classification of a memory directory (never persisted)."""

    type: DirectoryType
    git_root: str | None = None
    has_sync_config: bool = False

    model_config = {"frozen": True}


class FileChange(BaseModel):
    """A path whose status is anything other than ``unchanged``."""

    file: str
    status: FileSyncStatus
    local_hash: str | None = None
    remote_hash: str | None = None
    last_synced_hash: str | None = None

    model_config = {"frozen": True}


class InitCentralResult(BaseModel):
    success: bool
    path: str
    created: bool
    message: str

    model_config = {"frozen": True}


class CentralValidation(BaseModel):
    valid: bool
    errors: list[str] = []
    warnings: list[str] = []

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Operation results
# ---------------------------------------------------------------------------


class SyncAction(str, Enum):
    """What a push/pull did (or would do) with one path."""

    PUSH = "push"
    PULL = "pull"
    SKIP = "skip"
    CONFLICT = "conflict"
    KEEP_BOTH = "keep_both"


class SyncResult(BaseModel):
    """Outcome for one path.

    Attributes:
        file: Relative path.
        status: Classification that drove the action.
        action: Action performed.
        success: False if the action failed or left a conflict.
        error: Explanation for failures, conflicts and notable skips.
    """

    file: str
    status: FileSyncStatus
    action: SyncAction
    success: bool = True
    error: str | None = None

    model_config = {"frozen": True}


class SyncReport(BaseModel):
    """Aggregate outcome of one push, pull or bidirectional sync."""

    operation: str
    memory_dir: str
    central_path: str
    dry_run: bool = False
    results: list[SyncResult] = []
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    def _with_action(self, action: SyncAction) -> list[SyncResult]:
        return [r for r in self.results if r.action == action]

    @property
    def pushed(self) -> list[SyncResult]:
        return [
            r for r in self._with_action(SyncAction.PUSH) if r.success
        ]

    @property
    def pulled(self) -> list[SyncResult]:
        return [
            r for r in self._with_action(SyncAction.PULL) if r.success
        ]

    @property
    def merged(self) -> list[SyncResult]:
        """Conflicts replaced by a keep-both marker document."""
        return [
            r for r in self._with_action(SyncAction.KEEP_BOTH) if r.success
        ]

    @property
    def skipped(self) -> list[SyncResult]:
        return self._with_action(SyncAction.SKIP)

    @property
    def conflicts(self) -> list[SyncResult]:
        return self._with_action(SyncAction.CONFLICT)

    @property
    def errors(self) -> list[SyncResult]:
        """Results that failed for a reason other than a conflict."""
        return [
            r
            for r in self.results
            if not r.success and r.action != SyncAction.CONFLICT
        ]

    @property
    def success(self) -> bool:
        return all(r.success for r in self.results)

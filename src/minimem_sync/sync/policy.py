"""Resolution policies for classifying file changes.

A policy is chosen once from configuration and handed to the build pass
and the sync engine:

- ``ThreeWayPolicy`` (default): compares each side against the last
  synced hash and raises ``conflict`` when both sides changed differently.
- ``TwoWayPolicy``: ignores the base. Any content mismatch is
  ``modified`` and the operation direction picks the winner: push
  overwrites central, pull overwrites local. Never reports ``conflict``.

The ``create_policy()`` factory maps config strings to instances.
"""

from __future__ import annotations

import logging
from typing import Protocol

from minimem_sync.sync.models import FileSyncStatus

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Three-way classification
# ---------------------------------------------------------------------------


def get_file_sync_status(
    local_hash: str | None,
    remote_hash: str | None,
    last_synced_hash: str | None,
) -> FileSyncStatus:
    """Three-way classification of one path.

    Empty strings and ``None`` both mean absent. Combinations not covered
    below resolve to ``UNCHANGED`` rather than a spurious conflict.
    """
    local = local_hash or None
    remote = remote_hash or None
    base = last_synced_hash or None

    if local and remote and local == remote:
        return FileSyncStatus.UNCHANGED

    if base is None:
        if local and not remote:
            return FileSyncStatus.NEW_LOCAL
        if remote and not local:
            return FileSyncStatus.NEW_REMOTE
        if local and remote:
            # First sync, no common ancestor to trust.
            return FileSyncStatus.CONFLICT
        return FileSyncStatus.UNCHANGED

    if local is None and remote == base:
        return FileSyncStatus.DELETED_LOCAL
    if remote is None and local == base:
        return FileSyncStatus.DELETED_REMOTE

    local_changed = local != base
    remote_changed = remote != base
    if local_changed and not remote_changed:
        return FileSyncStatus.LOCAL_ONLY
    if remote_changed and not local_changed:
        return FileSyncStatus.REMOTE_ONLY
    if local_changed and remote_changed:
        if local != remote:
            return FileSyncStatus.CONFLICT
        return FileSyncStatus.UNCHANGED

    return FileSyncStatus.UNCHANGED


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ResolutionPolicy(Protocol):
    """Protocol all policies satisfy."""

    name: str

    def classify(
        self,
        local_hash: str | None,
        remote_hash: str | None,
        last_synced_hash: str | None,
    ) -> FileSyncStatus:
        """Classify one path from its two current hashes and its base."""
        ...  # pragma: no cover


# ---------------------------------------------------------------------------
# Implementations
# ---------------------------------------------------------------------------


class ThreeWayPolicy:
    name = "three-way"

    def classify(
        self,
        local_hash: str | None,
        remote_hash: str | None,
        last_synced_hash: str | None,
    ) -> FileSyncStatus:
        return get_file_sync_status(local_hash, remote_hash, last_synced_hash)


class TwoWayPolicy:
    """Last-writer-by-direction: no base, no conflicts."""

    name = "two-way"

    def classify(
        self,
        local_hash: str | None,
        remote_hash: str | None,
        last_synced_hash: str | None,
    ) -> FileSyncStatus:
        local = local_hash or None
        remote = remote_hash or None
        if local == remote:
            return FileSyncStatus.UNCHANGED
        if local and not remote:
            return FileSyncStatus.NEW_LOCAL
        if remote and not local:
            return FileSyncStatus.NEW_REMOTE
        return FileSyncStatus.MODIFIED


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_POLICY_MAP: dict[str, type] = {
    "three-way": ThreeWayPolicy,
    "two-way": TwoWayPolicy,
}


def create_policy(name: str) -> ResolutionPolicy:
    """Create a policy from a config string.

    Raises:
        ValueError: If *name* is not a known policy.
    """
    cls = _POLICY_MAP.get(name)
    if cls is None:
        raise ValueError(
            f"Unknown resolution policy '{name}'. "
            f"Valid: {', '.join(sorted(_POLICY_MAP))}"
        )
    logger.debug("Using %s resolution policy", name)
    return cls()  # type: ignore[no-any-return]

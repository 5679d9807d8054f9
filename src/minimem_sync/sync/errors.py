"""Exceptions raised by sync operations.

Recoverable conditions (missing state or registry documents, directories
that do not exist yet) never raise; they normalise to empty values. The
exceptions here terminate an operation and carry a message meant for the
user.
"""

from __future__ import annotations

from minimem_sync.sync.models import RegistryMapping


class SyncError(Exception):
    """Base class for user-facing sync failures."""


class NotInitializedError(SyncError):
    """The memory directory has no ``.minimem/config.json``."""

    def __init__(self, memory_dir: str) -> None:
        self.memory_dir = memory_dir
        super().__init__(
            f"{memory_dir} is not an initialized memory directory "
            "(missing .minimem/config.json). Initialize it first."
        )


class SyncNotConfiguredError(SyncError):
    """The directory has no enabled sync section."""

    def __init__(self, memory_dir: str) -> None:
        self.memory_dir = memory_dir
        super().__init__(
            f"Sync is not configured for {memory_dir}. "
            "Run 'minimem-sync init --path <central-path>' first."
        )


class CentralRepoError(SyncError):
    """No central repository configured, or it failed validation."""


class CollisionError(SyncError):
    """Another machine already maps the requested central path."""

    def __init__(self, mapping: RegistryMapping) -> None:
        self.mapping = mapping
        super().__init__(
            f"Central path '{mapping.path}' is already mapped by machine "
            f"'{mapping.machine_id}' ({mapping.local_path}). "
            "Choose another path or remove that mapping first."
        )

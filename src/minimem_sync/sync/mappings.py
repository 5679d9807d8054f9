"""Create, remove and list the mapping of a memory directory.

``init_sync`` is the only place collisions are checked. It ties the three
persisted documents together: the directory's sync section, the central
registry entry, and the directory's initial sync state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from minimem_sync.config import Settings
from minimem_sync.sync.central import validate_central_repo
from minimem_sync.sync.detection import detect_directory_type
from minimem_sync.sync.errors import (
    CentralRepoError,
    CollisionError,
    NotInitializedError,
)
from minimem_sync.sync.local_config import (
    DirectorySyncConfig,
    clear_sync_section,
    get_sync_config,
    is_initialized,
    set_sync_section,
)
from minimem_sync.sync.models import DirectoryType, RegistryMapping
from minimem_sync.sync.paths import state_path
from minimem_sync.sync.registry import (
    add_mapping,
    find_collision,
    find_mapping,
    normalize_repo_path,
    read_registry,
    remove_mapping,
    write_registry,
)
from minimem_sync.sync.state import create_sync_state, save_sync_state

logger = logging.getLogger(__name__)


def require_central_repo(settings: Settings) -> tuple[Path, list[str]]:
    """Configured central repository and its validation warnings.

    Raises:
        CentralRepoError: None configured, or validation reported errors.
    """
    if settings.central_repo is None:
        raise CentralRepoError(
            "No central repository configured. Run "
            "'minimem-sync init-central <path>' or set MINIMEM_CENTRAL_REPO."
        )
    validation = validate_central_repo(settings.central_repo)
    if not validation.valid:
        raise CentralRepoError("; ".join(validation.errors))
    for warning in validation.warnings:
        logger.warning("Central repository: %s", warning)
    return settings.central_repo, list(validation.warnings)


@dataclass
class InitSyncResult:
    mapping: RegistryMapping
    directory_type: DirectoryType
    remote_dir: Path
    warnings: list[str] = field(default_factory=list)


def init_sync(
    memory_dir: Path,
    central_path: str,
    settings: Settings,
    include: list[str] | None = None,
    exclude: list[str] | None = None,
) -> InitSyncResult:
    """Map *memory_dir* to *central_path* in the central repository.

    Re-running for the same directory and path refreshes the mapping.

    Raises:
        NotInitializedError: *memory_dir* has no ``.minimem/config.json``.
        CentralRepoError: No usable central repository.
        CollisionError: Another machine already maps *central_path*.
        ValueError: *central_path* is empty or escapes the repository.
    """
    memory_dir = Path(memory_dir).expanduser().resolve()
    if not is_initialized(memory_dir):
        raise NotInitializedError(str(memory_dir))

    central_repo, warnings = require_central_repo(settings)
    normalized = normalize_repo_path(central_path.strip().lstrip("/"))
    if normalized == "/" or ".." in Path(normalized).parts:
        raise ValueError(f"Invalid central path '{central_path}'")

    registry = read_registry(central_repo)
    other = find_collision(registry, normalized, settings.machine_id)
    if other is not None:
        raise CollisionError(other)

    existing = get_sync_config(memory_dir)
    set_sync_section(
        memory_dir,
        DirectorySyncConfig(
            enabled=True,
            path=normalized,
            include=include if include is not None else existing.include,
            exclude=exclude if exclude is not None else existing.exclude,
            conflict_strategy=existing.conflict_strategy,
        ),
    )

    mapping = RegistryMapping(
        path=normalized,
        local_path=str(memory_dir),
        machine_id=settings.machine_id,
    )
    write_registry(central_repo, add_mapping(registry, mapping))

    remote_dir = central_repo / normalized
    remote_dir.mkdir(parents=True, exist_ok=True)
    if not state_path(memory_dir).exists():
        save_sync_state(memory_dir, create_sync_state(normalized))

    logger.info(
        "Mapped %s to %s:%s (machine %s)",
        memory_dir,
        central_repo,
        normalized,
        settings.machine_id,
    )
    return InitSyncResult(
        mapping=mapping,
        directory_type=detect_directory_type(memory_dir),
        remote_dir=remote_dir,
        warnings=warnings,
    )


def remove_sync(memory_dir: Path, settings: Settings) -> RegistryMapping | None:
    """Disable sync for *memory_dir* and drop this machine's mapping.

    Central files and the local state file stay on disk.

    Returns:
        The removed mapping, or ``None`` if the registry had none.

    Raises:
        NotInitializedError: *memory_dir* has no ``.minimem/config.json``.
        CentralRepoError: No usable central repository.
    """
    memory_dir = Path(memory_dir).expanduser().resolve()
    if not is_initialized(memory_dir):
        raise NotInitializedError(str(memory_dir))

    config = get_sync_config(memory_dir)
    clear_sync_section(memory_dir)
    if not config.path:
        return None

    central_repo, _ = require_central_repo(settings)
    registry = read_registry(central_repo)
    target = normalize_repo_path(config.path)
    removed = find_mapping(registry, target, settings.machine_id)
    if removed is not None:
        write_registry(
            central_repo,
            remove_mapping(registry, target, settings.machine_id),
        )
        logger.info("Removed mapping %s for %s", target, settings.machine_id)
    return removed


@dataclass
class MappingListing:
    mapping: RegistryMapping
    is_current_machine: bool


def list_mappings(settings: Settings) -> list[MappingListing]:
    """All registry mappings sorted by path, flagging this machine's."""
    central_repo, _ = require_central_repo(settings)
    registry = read_registry(central_repo)
    return [
        MappingListing(m, m.machine_id == settings.machine_id)
        for m in sorted(
            registry.mappings, key=lambda m: (m.path, m.machine_id)
        )
    ]

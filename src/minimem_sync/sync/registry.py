"""Central registry of ``central path <-> local directory <-> machine`` mappings.

The registry lives at ``<central repo>/.minimem-registry.json`` and is read
in full and rewritten in full on every change. It is treated as
reconstructable: a missing or malformed document reads as empty.

Functions that change a registry return a new ``Registry``; the input is
never mutated. Only ``write_registry`` touches disk.

Collisions (one central path claimed by two machines) are checked when a
mapping is created, not on every sync. Two machines racing to claim the
same path at the same moment can both succeed.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import ValidationError

from minimem_sync.sync.models import (
    CollisionCheck,
    Registry,
    RegistryMapping,
    utc_now,
)
from minimem_sync.sync.storage import read_json, write_json_atomic

logger = logging.getLogger(__name__)

REGISTRY_FILE = ".minimem-registry.json"


def registry_path(central_repo: Path) -> Path:
    return Path(central_repo) / REGISTRY_FILE


def normalize_repo_path(path: str) -> str:
    """Canonical form of a central path: exactly one trailing slash.

    ``"proj"`` and ``"proj/"`` both become ``"proj/"``; ``""`` becomes ``"/"``.
    """
    return path.rstrip("/") + "/"


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


def read_registry(central_repo: Path) -> Registry:
    """Load the registry, or an empty one if missing or malformed."""
    path = registry_path(central_repo)
    data = read_json(path)
    if data is None:
        return Registry()
    try:
        return Registry.model_validate(data)
    except ValidationError as e:
        logger.warning("Malformed registry %s, treating as empty: %s", path, e)
        return Registry()


def write_registry(central_repo: Path, registry: Registry) -> None:
    """Replace the registry document atomically."""
    write_json_atomic(
        registry_path(central_repo), registry.model_dump(by_alias=True)
    )
    logger.debug(
        "Wrote registry with %d mapping(s) to %s",
        len(registry.mappings),
        central_repo,
    )


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def find_collision(
    registry: Registry, central_path: str, machine_id: str
) -> RegistryMapping | None:
    """Mapping of the same normalized path held by a different machine."""
    target = normalize_repo_path(central_path)
    for mapping in registry.mappings:
        if (
            normalize_repo_path(mapping.path) == target
            and mapping.machine_id != machine_id
        ):
            return mapping
    return None


def check_collision(
    registry: Registry,
    central_path: str,
    local_path: str,
    machine_id: str,
) -> CollisionCheck:
    """``COLLISION`` if another machine already maps *central_path*.

    *local_path* does not take part in the decision: the same machine may
    re-map its own path from a different directory.
    """
    if find_collision(registry, central_path, machine_id) is not None:
        return CollisionCheck.COLLISION
    return CollisionCheck.OK


def find_mapping(
    registry: Registry, central_path: str, machine_id: str
) -> RegistryMapping | None:
    target = normalize_repo_path(central_path)
    for mapping in registry.mappings:
        if (
            normalize_repo_path(mapping.path) == target
            and mapping.machine_id == machine_id
        ):
            return mapping
    return None


def get_machine_mappings(
    registry: Registry, machine_id: str
) -> list[RegistryMapping]:
    return [m for m in registry.mappings if m.machine_id == machine_id]


# ---------------------------------------------------------------------------
# Updates
# ---------------------------------------------------------------------------


def _without(
    registry: Registry, central_path: str, machine_id: str
) -> list[RegistryMapping]:
    target = normalize_repo_path(central_path)
    return [
        m
        for m in registry.mappings
        if not (
            normalize_repo_path(m.path) == target
            and m.machine_id == machine_id
        )
    ]


def add_mapping(registry: Registry, mapping: RegistryMapping) -> Registry:
    """Insert *mapping*, replacing any for the same (path, machine) pair."""
    mappings = _without(registry, mapping.path, mapping.machine_id)
    mappings.append(mapping)
    return registry.model_copy(update={"mappings": mappings})


def remove_mapping(
    registry: Registry, central_path: str, machine_id: str
) -> Registry:
    return registry.model_copy(
        update={"mappings": _without(registry, central_path, machine_id)}
    )


def update_last_sync(
    registry: Registry,
    central_path: str,
    machine_id: str,
    when: str | None = None,
) -> Registry:
    """Refresh ``lastSync`` of one mapping. Unknown mappings are a no-op."""
    target = normalize_repo_path(central_path)
    stamp = when or utc_now()
    mappings = [
        m.model_copy(update={"last_sync": stamp})
        if normalize_repo_path(m.path) == target and m.machine_id == machine_id
        else m
        for m in registry.mappings
    ]
    return registry.model_copy(update={"mappings": mappings})

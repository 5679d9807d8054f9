"""Health checks over the central registry.

Reports three kinds of issue:

- ``collision`` (error): one central path mapped by several machines.
  ``init_sync`` refuses these, but two machines racing, or a hand-edited
  registry, can still produce one.
- ``stale`` (warning): a mapping not synced for ``STALE_THRESHOLD_DAYS``.
- ``missing`` (warning): this machine's local directory is gone.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

from minimem_sync.sync.registry import normalize_repo_path, read_registry

logger = logging.getLogger(__name__)

STALE_THRESHOLD_DAYS = 30


class ValidationIssue(BaseModel):
    type: Literal["collision", "stale", "missing"]
    severity: Literal["warning", "error"]
    message: str
    path: str | None = None
    machine_id: str | None = None
    details: dict = {}

    model_config = {"frozen": True}


class ValidationStats(BaseModel):
    total_mappings: int = 0
    active_mappings: int = 0
    stale_mappings: int = 0
    collisions: int = 0
    missing_dirs: int = 0


class RegistryValidation(BaseModel):
    valid: bool = True
    issues: list[ValidationIssue] = []
    stats: ValidationStats = Field(default_factory=ValidationStats)


def _parse_timestamp(value: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def validate_registry(
    central_repo: Path,
    machine_id: str,
    now: datetime | None = None,
) -> RegistryValidation:
    """Check every mapping of the registry in *central_repo*.

    Args:
        central_repo: Central repository root.
        machine_id: This machine; only its local directories are checked.
        now: Reference time for staleness (default: current UTC time).
    """
    now = now or datetime.now(timezone.utc)
    stale_before = now - timedelta(days=STALE_THRESHOLD_DAYS)
    registry = read_registry(central_repo)

    issues: list[ValidationIssue] = []
    stats = ValidationStats(total_mappings=len(registry.mappings))

    machines_by_path: dict[str, set[str]] = defaultdict(set)
    for mapping in registry.mappings:
        machines_by_path[normalize_repo_path(mapping.path)].add(mapping.machine_id)

    for central_path, machines in sorted(machines_by_path.items()):
        if len(machines) > 1:
            issues.append(
                ValidationIssue(
                    type="collision",
                    severity="error",
                    message=(
                        f"Path '{central_path}' is mapped by multiple machines: "
                        f"{', '.join(sorted(machines))}"
                    ),
                    path=central_path,
                    details={"machines": sorted(machines)},
                )
            )
            stats.collisions += 1

    for mapping in registry.mappings:
        last_sync = _parse_timestamp(mapping.last_sync)
        if last_sync is not None and last_sync < stale_before:
            days = (now - last_sync).days
            issues.append(
                ValidationIssue(
                    type="stale",
                    severity="warning",
                    message=(
                        f"Mapping '{mapping.path}' by '{mapping.machine_id}' is "
                        f"stale (last sync: {days} days ago)"
                    ),
                    path=mapping.path,
                    machine_id=mapping.machine_id,
                    details={"lastSync": mapping.last_sync, "daysSinceSync": days},
                )
            )
            stats.stale_mappings += 1
        else:
            stats.active_mappings += 1

        if mapping.machine_id == machine_id and not Path(
            mapping.local_path
        ).expanduser().exists():
            issues.append(
                ValidationIssue(
                    type="missing",
                    severity="warning",
                    message=f"Local directory no longer exists: {mapping.local_path}",
                    path=mapping.path,
                    machine_id=mapping.machine_id,
                    details={"localPath": mapping.local_path},
                )
            )
            stats.missing_dirs += 1

    return RegistryValidation(
        valid=stats.collisions == 0, issues=issues, stats=stats
    )


def format_validation_result(result: RegistryValidation) -> str:
    """Human-readable summary of a validation run."""
    stats = result.stats
    lines = [
        "Registry Validation Results",
        "-" * 40,
        f"Total mappings: {stats.total_mappings}",
        f"Active mappings: {stats.active_mappings}",
    ]
    if stats.stale_mappings:
        lines.append(f"Stale mappings: {stats.stale_mappings}")
    if stats.collisions:
        lines.append(f"Collisions: {stats.collisions}")
    if stats.missing_dirs:
        lines.append(f"Missing directories: {stats.missing_dirs}")

    lines.append("")
    if result.issues:
        lines.append("Issues:")
        for issue in result.issues:
            prefix = "ERROR" if issue.severity == "error" else "WARN"
            lines.append(f"  [{prefix}] {issue.message}")
    else:
        lines.append("No issues found.")

    lines.append("")
    lines.append(
        "Registry is valid."
        if result.valid
        else "Registry has errors that need attention."
    )
    return "\n".join(lines)

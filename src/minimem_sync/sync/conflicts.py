"""Handling for files that changed on both sides.

Conflicts are never merged automatically. Depending on the configured
strategy a conflicting file is either:

* quarantined -- both versions copied to
  ``.minimem/conflicts/<timestamp>/<flat-name>.local`` / ``.remote`` and
  left in place for the user, or
* kept both -- local and central copies replaced by one document holding
  both versions between git-style markers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from minimem_sync.sync.paths import conflicts_dir
from minimem_sync.sync.storage import write_bytes_atomic

logger = logging.getLogger(__name__)

_TS_FORMAT = "%Y%m%dT%H%M%SZ"


def flatten_name(rel_path: str) -> str:
    """``notes/2024/a.md`` -> ``notes__2024__a.md``."""
    return rel_path.strip("/").replace("/", "__")


def conflict_timestamp(now: datetime | None = None) -> str:
    return (now or datetime.now(timezone.utc)).strftime(_TS_FORMAT)


def quarantine_conflict(
    memory_dir: Path,
    rel_path: str,
    local_bytes: bytes | None,
    remote_bytes: bytes | None,
    timestamp: str | None = None,
) -> Path:
    """Copy both versions of a conflicting file aside.

    Args:
        memory_dir: Local memory directory.
        rel_path: Conflicting path relative to the memory directory.
        local_bytes: Local content, ``None`` if absent.
        remote_bytes: Central content, ``None`` if absent.
        timestamp: Directory name to use; one operation passes the same
            value for all its conflicts.

    Returns:
        The timestamped conflict directory.
    """
    target_dir = conflicts_dir(memory_dir) / (timestamp or conflict_timestamp())
    name = flatten_name(rel_path)
    if local_bytes is not None:
        write_bytes_atomic(target_dir / f"{name}.local", local_bytes)
    if remote_bytes is not None:
        write_bytes_atomic(target_dir / f"{name}.remote", remote_bytes)
    logger.info("Quarantined conflict %s in %s", rel_path, target_dir)
    return target_dir


@dataclass
class QuarantinedConflict:
    """One timestamped directory of quarantined files."""

    timestamp: str
    path: Path
    files: list[str] = field(default_factory=list)


def list_quarantined_conflicts(memory_dir: Path) -> list[QuarantinedConflict]:
    """Quarantine directories, newest first. Empty if there are none."""
    root = conflicts_dir(memory_dir)
    if not root.is_dir():
        return []
    sets = [
        QuarantinedConflict(
            timestamp=entry.name,
            path=entry,
            files=sorted(p.name for p in entry.iterdir() if p.is_file()),
        )
        for entry in root.iterdir()
        if entry.is_dir()
    ]
    return sorted(sets, key=lambda c: c.timestamp, reverse=True)


def keep_both_content(
    local_bytes: bytes, remote_bytes: bytes, timestamp: str | None = None
) -> bytes:
    """Both versions in one document, local first.

    The content is kept as raw bytes; only the marker lines are ASCII.
    """
    stamp = timestamp or conflict_timestamp()

    def _terminated(data: bytes) -> bytes:
        return data if data.endswith(b"\n") or not data else data + b"\n"

    return b"".join(
        [
            f"<<<<<<< LOCAL ({stamp})\n".encode(),
            _terminated(local_bytes),
            b"=======\n",
            _terminated(remote_bytes),
            f">>>>>>> REMOTE ({stamp})\n".encode(),
        ]
    )

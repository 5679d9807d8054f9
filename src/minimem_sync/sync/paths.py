"""Locations of the per-directory private files and glob matching.

Every memory directory keeps its bookkeeping under ``.minimem/``::

    .minimem/
        config.json        directory configuration (sync section read here)
        sync-state.json    per-file hash history
        sync.log           JSON lines, one per completed operation
        conflicts/<ts>/    quarantined copies of conflicting files

Include/exclude patterns follow gitignore wildmatch rules through
``pathspec``, so ``**/*.md`` matches at any depth and ``drafts/**`` matches
everything below ``drafts/``.
"""

from __future__ import annotations

import errno
import os
from pathlib import Path
from typing import Iterable

import pathspec

PRIVATE_DIR = ".minimem"
CONFIG_FILE = "config.json"
STATE_FILE = "sync-state.json"
LOG_FILE = "sync.log"
CONFLICTS_DIR = "conflicts"

DEFAULT_INCLUDE = ["**/*.md"]
DEFAULT_EXCLUDE: list[str] = []


def private_dir(memory_dir: Path) -> Path:
    return Path(memory_dir) / PRIVATE_DIR


def config_path(memory_dir: Path) -> Path:
    return private_dir(memory_dir) / CONFIG_FILE


def state_path(memory_dir: Path) -> Path:
    return private_dir(memory_dir) / STATE_FILE


def log_path(memory_dir: Path) -> Path:
    return private_dir(memory_dir) / LOG_FILE


def conflicts_dir(memory_dir: Path) -> Path:
    return private_dir(memory_dir) / CONFLICTS_DIR


def to_posix(relative: Path | str) -> str:
    """Slash-separated form of a relative path, on every platform."""
    return Path(relative).as_posix()


def build_matcher(patterns: Iterable[str]) -> pathspec.PathSpec:
    return pathspec.PathSpec.from_lines("gitignore", list(patterns))


def list_syncable_files(
    root: Path,
    include: Iterable[str] | None = None,
    exclude: Iterable[str] | None = None,
) -> list[str]:
    """Return sorted relative paths under *root* selected by the globs.

    A path is selected when it matches at least one *include* pattern and
    no *exclude* pattern. ``.minimem/`` directories are never descended
    into, at any depth. A missing *root* yields ``[]``; other I/O errors
    propagate.

    Args:
        root: Directory to walk.
        include: Globs to select files (default ``["**/*.md"]``).
        exclude: Globs to drop files (default none).

    Returns:
        Slash-separated paths relative to *root*, sorted.
    """
    include_spec = build_matcher(
        DEFAULT_INCLUDE if include is None else include
    )
    exclude_spec = build_matcher(
        DEFAULT_EXCLUDE if exclude is None else exclude
    )

    def _raise(err: OSError) -> None:
        raise err

    root = Path(root)
    if not root.is_dir():
        if root.exists():
            raise NotADirectoryError(
                errno.ENOTDIR, os.strerror(errno.ENOTDIR), str(root)
            )
        return []

    found: list[str] = []
    for dirpath, dirnames, filenames in os.walk(root, onerror=_raise):
        if PRIVATE_DIR in dirnames:
            dirnames.remove(PRIVATE_DIR)
        for name in filenames:
            rel = to_posix(Path(dirpath, name).relative_to(root))
            if include_spec.match_file(rel) and not exclude_spec.match_file(
                rel
            ):
                found.append(rel)
    return sorted(found)

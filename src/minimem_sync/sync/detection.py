"""Classify a memory directory as project-bound or standalone.

A directory inside a git working tree is *project-bound*: the project's
own git carries it between machines. Anything else is *standalone* and
synced through the central repository. An explicit, enabled sync section
in the directory's config always makes it standalone, even inside a git
tree.
"""

from __future__ import annotations

import logging
from pathlib import Path

from minimem_sync.sync.models import DirectoryInfo, DirectoryType
from minimem_sync.sync.paths import config_path
from minimem_sync.sync.storage import read_json

logger = logging.getLogger(__name__)

GIT_MARKER = ".git"


def get_git_root(directory: Path) -> Path | None:
    """Nearest directory at or above *directory* holding a ``.git`` marker.

    The marker may be a directory (ordinary clone) or a file (worktree or
    submodule pointer).
    """
    start = Path(directory).expanduser().resolve()
    for candidate in (start, *start.parents):
        if (candidate / GIT_MARKER).exists():
            return candidate
    return None


def is_inside_git_repo(directory: Path) -> bool:
    return get_git_root(directory) is not None


def has_sync_config(directory: Path) -> bool:
    """True when the directory's config explicitly enables sync.

    Enabled means ``sync.enabled`` is true, or the section carries a
    non-empty ``path``. An explicit ``enabled: false`` wins over a path.
    A missing or unreadable config yields False.
    """
    try:
        document = read_json(config_path(directory))
    except OSError as e:
        logger.debug("Cannot read config in %s: %s", directory, e)
        return False
    if not isinstance(document, dict):
        return False
    section = document.get("sync")
    if not isinstance(section, dict):
        return False
    if section.get("enabled") is False:
        return False
    path = section.get("path")
    return section.get("enabled") is True or (
        isinstance(path, str) and bool(path.strip())
    )


def _classify(git_root: Path | None, sync_config: bool) -> DirectoryType:
    if sync_config:
        return DirectoryType.STANDALONE
    if git_root is not None:
        return DirectoryType.PROJECT_BOUND
    return DirectoryType.STANDALONE


def detect_directory_type(directory: Path) -> DirectoryType:
    sync_config = has_sync_config(directory)
    if sync_config:
        return DirectoryType.STANDALONE
    return _classify(get_git_root(directory), sync_config)


def get_directory_info(directory: Path) -> DirectoryInfo:
    """Classification plus the facts it was derived from, each looked up once."""
    git_root = get_git_root(directory)
    sync_config = has_sync_config(directory)
    return DirectoryInfo(
        type=_classify(git_root, sync_config),
        git_root=str(git_root) if git_root else None,
        has_sync_config=sync_config,
    )

"""Bootstrap and validate the central repository.

The central repository is a git working tree the user clones on every
machine. It holds the registry, a ``.gitignore`` for local artifacts, a
README, and one subdirectory per mapped central path. Transport (commit,
push, pull of the central repo itself) is left to the user's git.
"""

from __future__ import annotations

import json
import logging
import os
import subprocess
from pathlib import Path

from minimem_sync.sync.detection import get_git_root
from minimem_sync.sync.models import CentralValidation, InitCentralResult, Registry
from minimem_sync.sync.registry import REGISTRY_FILE, registry_path
from minimem_sync.sync.storage import write_bytes_atomic, write_json_atomic

logger = logging.getLogger(__name__)

GITIGNORE_CONTENT = """\
# Local index databases
*.db
*.db-journal
*.db-wal
*.db-shm

# Working directories
staging/
conflicts/
shadows/

.DS_Store
"""

README_CONTENT = f"""\
# minimem central repository

This repository stores memory directories synchronized by minimem-sync
from one or more machines.

- `{REGISTRY_FILE}` records which machine and local directory owns each
  top-level path. Do not edit it while a sync is running.
- Every other directory holds the files of one mapped memory directory.

Commit and push this repository with git as usual; minimem-sync only reads
and writes the working tree.
"""


def _write_if_absent(path: Path, content: bytes) -> bool:
    if path.exists():
        return False
    write_bytes_atomic(path, content)
    return True


def _git_init(path: Path) -> None:
    subprocess.run(
        ["git", "init"],
        cwd=str(path),
        capture_output=True,
        text=True,
        check=True,
    )


def init_central_repo(path: Path) -> InitCentralResult:
    """Create or decorate a central repository at *path*.

    Runs ``git init`` when *path* is missing or is not the root of its own
    repository, then writes ``.gitignore``, an empty registry and a README,
    each only if absent. Running it again is harmless.

    Never raises: failures come back as ``success=False`` with a message.
    """
    path = Path(path).expanduser().resolve()
    created = False
    try:
        path.mkdir(parents=True, exist_ok=True)
        if get_git_root(path) != path:
            _git_init(path)
            created = True
            logger.info("Initialized git repository at %s", path)

        written: list[str] = []
        if _write_if_absent(path / ".gitignore", GITIGNORE_CONTENT.encode()):
            written.append(".gitignore")
        if _write_registry_if_absent(registry_path(path)):
            written.append(REGISTRY_FILE)
        if _write_if_absent(path / "README.md", README_CONTENT.encode()):
            written.append("README.md")
    except subprocess.CalledProcessError as e:
        message = (e.stderr or "").strip() or str(e)
        logger.error("git init failed in %s: %s", path, message)
        return InitCentralResult(
            success=False,
            path=str(path),
            created=False,
            message=f"Failed to initialize git repository: {message}",
        )
    except OSError as e:
        logger.error("Cannot initialize central repository %s: %s", path, e)
        return InitCentralResult(
            success=False,
            path=str(path),
            created=created,
            message=f"Failed to initialize central repository: {e}",
        )

    if created:
        message = f"Created central repository at {path}"
    elif written:
        message = f"Central repository exists at {path}; added {', '.join(written)}"
    else:
        message = f"Central repository already initialized at {path}"
    return InitCentralResult(
        success=True, path=str(path), created=created, message=message
    )


def _write_registry_if_absent(target: Path) -> bool:
    if target.exists():
        return False
    write_json_atomic(target, Registry().model_dump(by_alias=True))
    return True


def validate_central_repo(path: Path) -> CentralValidation:
    """Check that *path* is usable as a central repository.

    Only a missing path (or one that is not a directory) is an error.
    Everything else is a warning so first-time use is not blocked.
    """
    path = Path(path).expanduser()
    if not path.exists():
        return CentralValidation(
            valid=False,
            errors=[f"Central repository does not exist: {path}"],
        )
    if not path.is_dir():
        return CentralValidation(
            valid=False,
            errors=[f"Central repository is not a directory: {path}"],
        )

    warnings: list[str] = []
    if get_git_root(path) is None:
        warnings.append(f"{path} is not under git version control")

    gitignore = path / ".gitignore"
    if not gitignore.exists():
        warnings.append("Missing .gitignore (index databases may be committed)")
    else:
        try:
            if "*.db" not in gitignore.read_text(encoding="utf-8").splitlines():
                warnings.append(".gitignore does not exclude *.db files")
        except (OSError, UnicodeDecodeError) as e:
            warnings.append(f"Cannot read .gitignore: {e}")

    registry = registry_path(path)
    if not registry.exists():
        warnings.append(f"Missing {REGISTRY_FILE} (created on first sync init)")
    else:
        try:
            with open(registry, encoding="utf-8") as fh:
                document = json.load(fh)
            if not isinstance(document, dict) or not isinstance(
                document.get("mappings"), list
            ):
                warnings.append(f"{REGISTRY_FILE} has an unexpected structure")
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            warnings.append(f"Cannot read {REGISTRY_FILE}: {e}")

    if not os.access(path, os.W_OK):
        warnings.append(f"{path} is not writable")

    return CentralValidation(valid=True, warnings=warnings)

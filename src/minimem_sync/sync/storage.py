"""Atomic file replacement shared by every persisted document.

Writes go to a temp file in the target's directory and are moved into
place with ``os.replace()``, so a reader sees either the previous document
or the new one, and an interrupted write leaves the previous one intact.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any


def write_bytes_atomic(target: Path, data: bytes) -> None:
    """Replace *target* with *data*, creating parent directories."""
    target = Path(target)
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(
        dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.replace(tmp_path, target)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def write_json_atomic(target: Path, document: Any) -> None:
    """Serialise *document* with two-space indent and replace *target*."""
    text = json.dumps(document, indent=2, ensure_ascii=False) + "\n"
    write_bytes_atomic(target, text.encode("utf-8"))


def read_json(path: Path) -> Any | None:
    """Parse a JSON file; ``None`` if it is missing or not valid JSON.

    Permission and other I/O errors propagate.
    """
    try:
        with open(path, encoding="utf-8") as fh:
            return json.load(fh)
    except FileNotFoundError:
        return None
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None

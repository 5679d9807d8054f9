"""Content digests used to compare local and central copies.

Hashes are SHA-256 over the raw bytes. Nothing is normalised: two files
differing only in line endings or encoding hash differently and are
reported as changed.
"""

from __future__ import annotations

import hashlib
from pathlib import Path

_CHUNK = 1 << 16


def hash_content(content: bytes | str) -> str:
    """Hex SHA-256 of an in-memory buffer (``str`` is UTF-8 encoded)."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()


def hash_file(path: Path) -> str:
    """Hex SHA-256 of a file's bytes, read in chunks."""
    digest = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(_CHUNK), b""):
            digest.update(chunk)
    return digest.hexdigest()


def hash_file_if_exists(path: Path) -> str | None:
    """Like ``hash_file`` but ``None`` when *path* does not exist."""
    try:
        return hash_file(path)
    except FileNotFoundError:
        return None

"""Operation history in ``.minimem/sync.log``.

One JSON object per line, oldest first, trimmed to the most recent
``MAX_LOG_ENTRIES`` on every append.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from minimem_sync.sync.models import SyncReport
from minimem_sync.sync.paths import log_path
from minimem_sync.sync.storage import write_bytes_atomic

logger = logging.getLogger(__name__)

MAX_LOG_ENTRIES = 1000


def read_sync_log(memory_dir: Path, limit: int | None = None) -> list[dict[str, Any]]:
    """Entries oldest first; the last *limit* when given.

    Lines that are not valid JSON objects are skipped.
    """
    path = log_path(memory_dir)
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except FileNotFoundError:
        return []

    entries: list[dict[str, Any]] = []
    for line in lines:
        if not line.strip():
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            logger.debug("Skipping malformed sync log line in %s", path)
            continue
        if isinstance(entry, dict):
            entries.append(entry)
    if limit is not None:
        entries = entries[-limit:] if limit > 0 else []
    return entries


def log_entry_from_report(report: SyncReport) -> dict[str, Any]:
    return {
        "timestamp": report.completed_at or report.started_at,
        "operation": report.operation,
        "centralPath": report.central_path,
        "pushed": len(report.pushed),
        "pulled": len(report.pulled),
        "merged": len(report.merged),
        "conflicts": len(report.conflicts),
        "errors": len(report.errors),
        "success": report.success,
    }


def append_sync_log(memory_dir: Path, entry: dict[str, Any]) -> None:
    """Append *entry*, keeping only the newest ``MAX_LOG_ENTRIES``."""
    entries = read_sync_log(memory_dir)
    entries.append(entry)
    entries = entries[-MAX_LOG_ENTRIES:]
    text = "".join(json.dumps(e, ensure_ascii=False) + "\n" for e in entries)
    write_bytes_atomic(log_path(memory_dir), text.encode("utf-8"))

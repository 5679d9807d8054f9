"""Sync report formatting functions.

Human-readable and machine-readable output shared by the CLI and the MCP
tools:

- ``format_sync_report`` -- post-sync summary.
- ``format_dry_run_preview`` -- dry-run preview grouped by action.
- ``format_status`` -- read-only diff grouped by status.
- ``report_to_json`` / ``status_to_json`` -- structured dicts.
"""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING

from .models import FileSyncStatus, SyncAction

if TYPE_CHECKING:
    from .engine import SyncStatusReport
    from .models import SyncReport

_OPERATION_LABELS = {"push": "Push", "pull": "Pull", "both": "Sync"}

# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_sync_report(report: SyncReport) -> str:
    """Format a completed sync report as text.

    Sections appear only when non-empty; skipped files are counted, not
    listed.
    """
    if report.dry_run:
        return format_dry_run_preview(report)

    label = _OPERATION_LABELS.get(report.operation, report.operation)
    lines: list[str] = [
        f"{label} report for {report.memory_dir} <-> {report.central_path}",
        f"Started: {report.started_at}",
    ]
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")

    lines.append(
        f"{len(report.results)} changed files: "
        f"{len(report.pushed)} pushed, {len(report.pulled)} pulled, "
        f"{len(report.merged)} kept both, "
        f"{len(report.conflicts)} conflicts, {len(report.errors)} errors"
    )
    lines.append("")

    sections = (
        ("Pushed to central:", report.pushed),
        ("Pulled from central:", report.pulled),
        ("Kept both versions:", report.merged),
    )
    for title, results in sections:
        if results:
            lines.append(title)
            lines.extend(f"  {r.file}" for r in results)
            lines.append("")

    if report.conflicts:
        lines.append("Conflicts:")
        for r in report.conflicts:
            lines.append(f"  {r.file}: {r.error or 'both sides changed'}")
        lines.append(
            "  (both versions saved under .minimem/conflicts/)"
        )
        lines.append("")

    if report.errors:
        lines.append("Errors:")
        lines.extend(f"  {r.file}: {r.error}" for r in report.errors)
        lines.append("")

    if report.skipped:
        lines.append(f"Skipped: {len(report.skipped)} files")
        lines.append("")

    if not report.results:
        lines.append("Everything up to date.")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# Dry-run preview
# ------------------------------------------------------------------


def format_dry_run_preview(report: SyncReport) -> str:
    """Format a dry-run report grouped by action.

    Each proposed action is shown as ``[ACTION]`` followed by its files.
    """
    lines: list[str] = [
        "DRY RUN -- No changes will be made",
        f"Central path: {report.central_path}",
        "",
    ]

    groups: dict[SyncAction, list[str]] = defaultdict(list)
    for r in report.results:
        groups[r.action].append(r.file)

    display_order = [
        SyncAction.PUSH,
        SyncAction.PULL,
        SyncAction.KEEP_BOTH,
        SyncAction.CONFLICT,
    ]
    for action in display_order:
        if action not in groups:
            continue
        lines.append(f"[{action.value.upper().replace('_', ' ')}]")
        lines.extend(f"  {f}" for f in groups[action])
        lines.append("")

    skip_count = len(groups.get(SyncAction.SKIP, []))
    if skip_count:
        lines.append(f"Skipped: {skip_count} files")
        lines.append("")

    if not any(a != SyncAction.SKIP for a in groups):
        lines.append("No changes needed.")
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# Status
# ------------------------------------------------------------------

_STATUS_ORDER = [
    FileSyncStatus.NEW_LOCAL,
    FileSyncStatus.LOCAL_ONLY,
    FileSyncStatus.NEW_REMOTE,
    FileSyncStatus.REMOTE_ONLY,
    FileSyncStatus.MODIFIED,
    FileSyncStatus.DELETED_LOCAL,
    FileSyncStatus.DELETED_REMOTE,
    FileSyncStatus.CONFLICT,
]


def format_status(status: SyncStatusReport) -> str:
    lines = [
        f"Directory: {status.memory_dir} ({status.directory.type.value})",
        f"Central:   {status.remote_dir}",
        f"Last sync: {status.last_sync or 'never'}",
        f"Tracked:   {status.tracked} files",
        "",
    ]
    if not status.changes:
        lines.append("Everything up to date.")
        return "\n".join(lines)

    by_status: dict[FileSyncStatus, list[str]] = defaultdict(list)
    for change in status.changes:
        by_status[change.status].append(change.file)
    for key in _STATUS_ORDER:
        if key in by_status:
            lines.append(f"{key.value}:")
            lines.extend(f"  {f}" for f in by_status[key])
            lines.append("")
    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: SyncReport) -> dict:
    """Convert a sync report to a dict for JSON output.

    Suitable for MCP ``structuredContent`` and ``--json`` CLI output.
    """
    results_list = []
    for r in report.results:
        entry: dict = {
            "file": r.file,
            "status": r.status.value,
            "action": r.action.value,
            "success": r.success,
        }
        if r.error:
            entry["error"] = r.error
        results_list.append(entry)

    return {
        "operation": report.operation,
        "memory_dir": report.memory_dir,
        "central_path": report.central_path,
        "dry_run": report.dry_run,
        "success": report.success,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "counts": {
            "total": len(report.results),
            "pushed": len(report.pushed),
            "pulled": len(report.pulled),
            "kept_both": len(report.merged),
            "conflicts": len(report.conflicts),
            "errors": len(report.errors),
            "skipped": len(report.skipped),
        },
        "results": results_list,
    }


def status_to_json(status: SyncStatusReport) -> dict:
    return {
        "memory_dir": status.memory_dir,
        "central_path": status.central_path,
        "remote_dir": status.remote_dir,
        "directory_type": status.directory.type.value,
        "git_root": status.directory.git_root,
        "last_sync": status.last_sync,
        "tracked": status.tracked,
        "changes": [
            {"file": c.file, "status": c.status.value} for c in status.changes
        ],
    }

"""MCP tool handlers for memory directory sync.

Defines four tools:

- ``sync_status`` -- classify every file of a memory directory (read-only).
- ``sync_push`` -- copy local changes to the central repository.
- ``sync_pull`` -- copy central changes into the memory directory.
- ``sync_mappings`` -- list the central registry (read-only).

Handlers raise ``SyncError``; ``ToolRegistry.call_tool`` turns those into
structured errors.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import mcp.types as types

from ...config import Settings
from ...core.async_utils import run_sync
from ...sync.engine import SyncEngine
from ...sync.mappings import list_mappings
from ...sync.reporter import (
    format_status,
    format_sync_report,
    report_to_json,
    status_to_json,
)
from .registry import ToolSpec

logger = logging.getLogger(__name__)

_MEMORY_DIR_PROPERTY = {
    "type": "string",
    "description": "Absolute path of the memory directory",
}

# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


def _transfer_schema(force_help: str) -> dict:
    return {
        "type": "object",
        "properties": {
            "memory_dir": _MEMORY_DIR_PROPERTY,
            "dry_run": {
                "type": "boolean",
                "default": False,
                "description": "Preview changes without applying them",
            },
            "force": {
                "type": "boolean",
                "default": False,
                "description": force_help,
            },
        },
        "required": ["memory_dir"],
    }


SYNC_TOOLS: list[types.Tool] = [
    types.Tool(
        name="sync_status",
        description=(
            "Show which files of a memory directory changed locally, changed "
            "in the central repository, or conflict. Changes nothing."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {"memory_dir": _MEMORY_DIR_PROPERTY},
            "required": ["memory_dir"],
        },
    ),
    types.Tool(
        name="sync_push",
        description=(
            "Copy new and locally changed files of a memory directory to the "
            "central repository. Conflicts are reported, not overwritten, "
            "unless force is set."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema=_transfer_schema(
            "Overwrite the central copy of conflicting files"
        ),
    ),
    types.Tool(
        name="sync_pull",
        description=(
            "Copy new and centrally changed files into a memory directory. "
            "Conflicts are reported, not overwritten, unless force is set."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema=_transfer_schema(
            "Overwrite the local copy of conflicting files"
        ),
    ),
    types.Tool(
        name="sync_mappings",
        description=(
            "List central repository mappings: central path, local "
            "directory, machine and last sync time."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={"type": "object", "properties": {}, "required": []},
    ),
]


# ---------------------------------------------------------------------------
# Individual handlers
# ---------------------------------------------------------------------------


def _memory_dir(args: dict[str, Any]) -> Path:
    value = args.get("memory_dir")
    if not value or not isinstance(value, str):
        raise ValueError("memory_dir is required")
    return Path(value).expanduser()


async def _handle_status(
    settings: Settings, args: dict[str, Any]
) -> types.CallToolResult:
    status = await SyncEngine(_memory_dir(args), settings).status()
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=format_status(status))],
        structuredContent=status_to_json(status),
    )


async def _run_transfer(
    settings: Settings, args: dict[str, Any], direction: str
) -> types.CallToolResult:
    engine = SyncEngine(_memory_dir(args), settings)
    report = await engine.run(
        direction,  # type: ignore[arg-type]
        force=bool(args.get("force", False)),
        dry_run=bool(args.get("dry_run", False)),
    )
    return types.CallToolResult(
        content=[
            types.TextContent(type="text", text=format_sync_report(report))
        ],
        structuredContent=report_to_json(report),
        isError=not report.success,
    )


async def _handle_push(
    settings: Settings, args: dict[str, Any]
) -> types.CallToolResult:
    return await _run_transfer(settings, args, "push")


async def _handle_pull(
    settings: Settings, args: dict[str, Any]
) -> types.CallToolResult:
    return await _run_transfer(settings, args, "pull")


async def _handle_mappings(
    settings: Settings, args: dict[str, Any]
) -> types.CallToolResult:
    listings = await run_sync(list_mappings, settings)

    if not listings:
        text = "No mappings registered."
    else:
        lines = [f"Mappings ({len(listings)}):"]
        for item in listings:
            marker = "*" if item.is_current_machine else " "
            m = item.mapping
            lines.append(
                f" {marker} {m.path} -> {m.local_path} "
                f"[{m.machine_id}] last sync {m.last_sync}"
            )
        text = "\n".join(lines)

    structured = {
        "machine_id": settings.machine_id,
        "mappings": [
            {
                **item.mapping.model_dump(),
                "current_machine": item.is_current_machine,
            }
            for item in listings
        ],
    }
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=structured,
    )


# ToolSpec list for registry-based dispatch
SYNC_SPECS: list[ToolSpec] = [
    ToolSpec(tool=SYNC_TOOLS[0], writes=False, handler=_handle_status),
    ToolSpec(tool=SYNC_TOOLS[1], writes=True, handler=_handle_push),
    ToolSpec(tool=SYNC_TOOLS[2], writes=True, handler=_handle_pull),
    ToolSpec(tool=SYNC_TOOLS[3], writes=False, handler=_handle_mappings),
]

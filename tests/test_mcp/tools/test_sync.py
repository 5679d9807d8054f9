"""Tests for MCP sync tool definitions and handlers.

Covers:
- Tool definitions have valid schemas
- Handlers run against a real temporary central repository
- dry_run and force parameters pass through
- Missing configuration surfaces as structured errors via the registry
"""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import mcp.types as types
import pytest

from minimem_sync.config import Settings
from minimem_sync.mcp.tools import ALL_SPECS
from minimem_sync.mcp.tools.registry import ToolRegistry
from minimem_sync.mcp.tools.sync import SYNC_TOOLS
from minimem_sync.sync.mappings import init_sync


def _text(result: types.CallToolResult) -> str:
    content = result.content[0]
    assert isinstance(content, types.TextContent)
    return content.text


@pytest.fixture
def registry() -> ToolRegistry:
    return ToolRegistry(ALL_SPECS)


@pytest.fixture
def mapped(memory_dir: Path, settings: Settings) -> tuple[Path, Path]:
    result = init_sync(memory_dir, "work/", settings)
    return memory_dir, result.remote_dir


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


class TestToolDefinitions:
    def test_four_tools(self):
        assert [t.name for t in SYNC_TOOLS] == [
            "sync_status",
            "sync_push",
            "sync_pull",
            "sync_mappings",
        ]

    def test_schemas_are_objects(self):
        for tool in SYNC_TOOLS:
            assert tool.inputSchema["type"] == "object"
            assert "properties" in tool.inputSchema

    def test_transfer_tools_take_dry_run_and_force(self):
        for tool in SYNC_TOOLS[1:3]:
            props = tool.inputSchema["properties"]
            assert set(props) == {"memory_dir", "dry_run", "force"}
            assert tool.inputSchema["required"] == ["memory_dir"]

    def test_read_only_hints(self):
        hints = {t.name: t.annotations.readOnlyHint for t in SYNC_TOOLS}
        assert hints == {
            "sync_status": True,
            "sync_push": False,
            "sync_pull": False,
            "sync_mappings": True,
        }


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


class TestSyncStatusTool:
    async def test_reports_changes(self, registry, mapped, settings):
        local, _ = mapped
        (local / "a.md").write_text("a")

        result = await registry.call_tool(
            "sync_status", {"memory_dir": str(local)}, settings
        )

        assert not result.isError
        assert "new-local:\n  a.md" in _text(result)
        assert result.structuredContent["changes"] == [
            {"file": "a.md", "status": "new-local"}
        ]

    async def test_missing_memory_dir_argument(self, registry, settings):
        result = await registry.call_tool("sync_status", {}, settings)

        assert result.isError
        assert "Error (validation_error): memory_dir is required" in _text(result)

    async def test_not_configured(self, registry, memory_dir, settings):
        result = await registry.call_tool(
            "sync_status", {"memory_dir": str(memory_dir)}, settings
        )

        assert result.isError
        assert _text(result).startswith("Error (not_configured)")


class TestTransferTools:
    async def test_push(self, registry, mapped, settings):
        local, remote = mapped
        (local / "a.md").write_text("a")

        result = await registry.call_tool(
            "sync_push", {"memory_dir": str(local)}, settings
        )

        assert not result.isError
        assert result.structuredContent["counts"]["pushed"] == 1
        assert (remote / "a.md").read_text() == "a"

    async def test_pull_dry_run(self, registry, mapped, settings):
        local, remote = mapped
        (remote / "b.md").write_text("b")

        result = await registry.call_tool(
            "sync_pull", {"memory_dir": str(local), "dry_run": True}, settings
        )

        assert result.structuredContent["dry_run"] is True
        assert _text(result).startswith("DRY RUN")
        assert not (local / "b.md").exists()

    async def test_conflict_sets_is_error(self, registry, mapped, settings):
        local, remote = mapped
        (local / "a.md").write_text("mine")
        (remote / "a.md").write_text("theirs")
        args = {"memory_dir": str(local)}

        result = await registry.call_tool("sync_push", args, settings)
        assert result.isError
        assert result.structuredContent["counts"]["conflicts"] == 1

        forced = await registry.call_tool(
            "sync_push", {**args, "force": True}, settings
        )
        assert not forced.isError
        assert (remote / "a.md").read_text() == "mine"

    async def test_no_central_repo(self, registry, mapped, settings):
        local, _ = mapped

        result = await registry.call_tool(
            "sync_pull",
            {"memory_dir": str(local)},
            replace(settings, central_repo=None),
        )

        assert result.isError
        assert _text(result).startswith("Error (central_repo)")


class TestSyncMappingsTool:
    async def test_lists_mappings(self, registry, mapped, settings):
        result = await registry.call_tool("sync_mappings", {}, settings)

        assert "Mappings (1):" in _text(result)
        assert " * work/ -> " in _text(result)
        [entry] = result.structuredContent["mappings"]
        assert entry["path"] == "work/"
        assert entry["current_machine"] is True
        assert result.structuredContent["machine_id"] == "machine-a"

    async def test_empty(self, registry, settings):
        result = await registry.call_tool("sync_mappings", {}, settings)

        assert _text(result) == "No mappings registered."
        assert result.structuredContent["mappings"] == []

"""MCP server exposing minimem sync operations over stdio.

Agents can inspect sync status, push, pull and list registry mappings of
memory directories through standardized tools.

Transport: stdio
Protocol: JSON-RPC 2.0 over MCP
"""

import argparse
import asyncio
import logging
import sys

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .. import __version__
from ..config import Settings
from ..logger import DEFAULT_MCP_LOG_FILE, setup_logging
from .lifespan import server_lifespan
from .tools import ALL_SPECS, ToolRegistry, build_error_response

logger = logging.getLogger(__name__)

server = Server("minimem-sync")

# Initialized in main()
_settings: Settings | None = None
_registry: ToolRegistry | None = None


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_settings() -> Settings:
    """Get the global Settings instance.

    Raises:
        RuntimeError: If settings are not initialized
    """
    if _settings is None:
        raise RuntimeError(
            "Settings not initialized. Server lifespan not started."
        )
    return _settings


def set_settings(settings: Settings | None) -> None:
    global _settings
    _settings = settings


def get_registry() -> ToolRegistry:
    """Get the global ToolRegistry instance.

    Raises:
        RuntimeError: If registry is not initialized
    """
    if _registry is None:
        raise RuntimeError("ToolRegistry not initialized.")
    return _registry


def set_registry(registry: ToolRegistry | None) -> None:
    global _registry
    _registry = registry


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """List available sync tools."""
    return get_registry().list_tools()


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Handle tool execution via ToolRegistry dispatch.

    Args:
        name: The name of the tool to execute.
        arguments: Tool arguments (optional).

    Returns:
        CallToolResult with tool output content and optional isError flag.
    """
    settings = get_settings()
    try:
        return await get_registry().call_tool(name, arguments, settings)
    except ValueError as e:
        # Unknown or filtered-out tool name
        return build_error_response(
            "unknown_tool",
            str(e),
            "Use list_tools to see available tools.",
        )


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


async def main(config_overrides: dict | None = None):
    """Run the MCP server with stdio transport.

    Logging goes to a file only, never stdout, so protocol messages are not
    corrupted.

    Args:
        config_overrides: Optional dict with values from the command line
            (central_repo, machine_id, policy, log_file, read_only)
    """
    overrides = config_overrides or {}

    # Must run before stdio_server so nothing is written to stdout.
    setup_logging(mode="mcp", log_file=overrides.get("log_file"))

    registry = ToolRegistry(ALL_SPECS, read_only=overrides.get("read_only", False))
    logger.info(
        "Registered %d tools (of %d total)",
        registry.tool_count(),
        len(ALL_SPECS),
    )
    set_registry(registry)

    async with server_lifespan(config_overrides=overrides) as ctx:
        set_settings(ctx["settings"])
        try:
            async with mcp.server.stdio.stdio_server() as (
                read_stream,
                write_stream,
            ):
                init_options = InitializationOptions(
                    server_name="minimem-sync",
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(
                    read_stream, write_stream, init_options
                )
        finally:
            set_settings(None)
            set_registry(None)


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    parser = argparse.ArgumentParser(
        description="minimem-sync MCP server - sync memory directories through a central repository",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with configuration from .env, environment or config.yml
  minimem-sync-mcp

  # Override the central repository
  minimem-sync-mcp --central-repo ~/memory-central

  # Expose only status and mapping tools
  minimem-sync-mcp --read-only

Note: This server uses stdio transport for JSON-RPC communication with MCP clients.
All user-facing messages are written to stderr.
        """,
    )
    parser.add_argument(
        "--central-repo",
        help="Central repository path (overrides MINIMEM_CENTRAL_REPO and config files)",
    )
    parser.add_argument(
        "--machine-id",
        help="Machine id (overrides MINIMEM_MACHINE_ID)",
    )
    parser.add_argument(
        "--policy",
        choices=["three-way", "two-way"],
        help="Change classification policy (default: three-way)",
    )
    parser.add_argument(
        "--log-file",
        default=DEFAULT_MCP_LOG_FILE,
        help=f"Log file path (default: {DEFAULT_MCP_LOG_FILE})",
    )
    parser.add_argument(
        "--read-only",
        action="store_true",
        help="Only expose tools that do not write files",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"minimem-sync-mcp version {__version__}",
    )

    args = parser.parse_args()

    config_overrides: dict = {}
    if args.central_repo:
        config_overrides["central_repo"] = args.central_repo
    if args.machine_id:
        config_overrides["machine_id"] = args.machine_id
    if args.policy:
        config_overrides["policy"] = args.policy
    if args.log_file:
        config_overrides["log_file"] = args.log_file
    if args.read_only:
        config_overrides["read_only"] = True

    try:
        asyncio.run(main(config_overrides=config_overrides))
    except RuntimeError:
        # Error already printed to stderr by lifespan manager
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()

"""Error response builders for MCP tool handlers.

Structured error responses carry a corrective action so an agent can
recover without human intervention.
"""

import mcp.types as types

from ...sync.errors import (
    CentralRepoError,
    CollisionError,
    NotInitializedError,
    SyncError,
    SyncNotConfiguredError,
)


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (not_initialized, not_configured,
            central_repo, collision, validation_error, server_error)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("not_configured", "Sync is not configured", "Run 'minimem-sync init --path notes/'.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


def translate_sync_error(error: SyncError) -> types.CallToolResult:
    """Map a ``SyncError`` to a structured response with a corrective action."""
    match error:
        case NotInitializedError():
            return build_error_response(
                "not_initialized",
                str(error),
                "Check memory_dir points at an initialized memory directory.",
            )
        case SyncNotConfiguredError():
            return build_error_response(
                "not_configured",
                str(error),
                "Ask the user to run 'minimem-sync init --path <central-path>' "
                "in that directory.",
            )
        case CentralRepoError():
            return build_error_response(
                "central_repo",
                str(error),
                "Ask the user to run 'minimem-sync init-central <path>' or set "
                "MINIMEM_CENTRAL_REPO.",
            )
        case CollisionError():
            return build_error_response(
                "collision",
                str(error),
                "Use sync_mappings to list mappings and choose a free path.",
            )
        case _:
            return build_error_response(
                "sync_error", str(error), "Check the sync configuration."
            )

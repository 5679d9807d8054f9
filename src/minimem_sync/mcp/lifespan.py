"""Lifespan management for MCP server startup and shutdown."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from dotenv import load_dotenv

from ..config import load_settings
from ..config_loader import (
    discover_config_files,
    load_hierarchical_config,
)
from ..config_schema import build_config, yaml_fallbacks
from ..sync.central import validate_central_repo

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Load .env file (so values are available for env var lookups and YAML interpolation)
    - Load YAML config file if present (as fallback values)
    - Merge all sources via load_settings(): CLI > env vars > .env > YAML > defaults
    - Report central repository problems as warnings (tools fail per call)

    Args:
        config_overrides: Optional dict with values from CLI (central_repo, machine_id, policy)

    Yields:
        Dict with 'settings' key containing the resolved Settings

    Raises:
        RuntimeError: If configuration is invalid.
    """
    logger.info("MCP server starting...")
    _stderr_print("minimem-sync MCP server starting...")

    try:
        load_dotenv()

        fallbacks: dict[str, Any] | None = None
        config_files = discover_config_files()
        sources = []
        if config_files:
            fallbacks = yaml_fallbacks(build_config(load_hierarchical_config()))
            sources.append(f"config file: {config_files[0]}")

        overrides = config_overrides or {}
        settings = load_settings(
            central_repo=overrides.get("central_repo"),
            machine_id=overrides.get("machine_id"),
            policy=overrides.get("policy"),
            debug=overrides.get("debug", False),
            yaml_fallbacks=fallbacks,
        )

        if overrides:
            sources.append("CLI arguments")
        sources.append("environment variables")
        source_desc = ", ".join(sources)
        logger.info("Configuration loaded from: %s", source_desc)
        _stderr_print(f"  Configuration loaded from: {source_desc}")
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        raise RuntimeError(f"Configuration error: {e}") from e

    if settings.central_repo is None:
        logger.warning("No central repository configured")
        _stderr_print(
            "  WARNING: no central repository configured; set MINIMEM_CENTRAL_REPO."
        )
    else:
        validation = validate_central_repo(settings.central_repo)
        for problem in validation.errors + validation.warnings:
            logger.warning("Central repository: %s", problem)
            _stderr_print(f"  WARNING: {problem}")
        _stderr_print(f"  Central repository: {settings.central_repo}")

    _stderr_print(f"  Machine id: {settings.machine_id}")
    _stderr_print("Server ready. Waiting for MCP client connection...")

    yield {"settings": settings}

    logger.info("MCP server shutting down")
    _stderr_print("minimem-sync MCP server shutting down.")

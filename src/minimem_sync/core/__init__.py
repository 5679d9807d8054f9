"""Async plumbing shared by the sync engine, CLI and MCP server."""

from .async_utils import hashing_limiter, run_sync, run_sync_limited

__all__ = ["hashing_limiter", "run_sync", "run_sync_limited"]

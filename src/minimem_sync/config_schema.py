"""Schema for the global YAML configuration file.

Pydantic models describing ``~/.config/minimem/config.yml`` (or whatever
``MINIMEM_CONFIG`` points at). Every section has defaults, so an empty or
missing file is a valid configuration.

Usage:
    from minimem_sync.config_loader import load_hierarchical_config
    from minimem_sync.config_schema import build_config, yaml_fallbacks

    unified = build_config(load_hierarchical_config())
    settings = load_settings(yaml_fallbacks=yaml_fallbacks(unified))
"""

from __future__ import annotations

import logging
from typing import Any, Literal

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class SyncDefaultsConfig(BaseModel):
    """Process-wide sync behaviour."""

    policy: Literal["three-way", "two-way"] = Field(
        default="three-way",
        description="Change classification policy",
    )
    conflict_strategy: Literal["manual", "keep-both"] = Field(
        default="manual",
        description="What push/pull do with a conflicting file",
    )
    max_parallel_hashes: int = Field(
        default=8,
        ge=1,
        le=256,
        description="Maximum files hashed concurrently (1-256)",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


class UnifiedConfig(BaseModel):
    """Top-level configuration. ``UnifiedConfig()`` is always valid."""

    central_repo: str | None = Field(
        default=None, description="Path of the central repository"
    )
    machine_id: str | None = Field(
        default=None, description="Identifier of this machine"
    )
    sync: SyncDefaultsConfig = Field(default_factory=SyncDefaultsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Validate the raw dict from ``load_hierarchical_config()``.

    Missing sections get defaults.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


def yaml_fallbacks(unified: UnifiedConfig) -> dict[str, Any]:
    """Flatten a ``UnifiedConfig`` into the fallback dict ``load_settings`` takes.

    ``None`` values are dropped so they never shadow built-in defaults.
    """
    flat: dict[str, Any] = {
        "central_repo": unified.central_repo,
        "machine_id": unified.machine_id,
        "policy": unified.sync.policy,
        "conflict_strategy": unified.sync.conflict_strategy,
        "max_parallel_hashes": unified.sync.max_parallel_hashes,
        "log_level": unified.logging.level,
        "log_file": unified.logging.file,
    }
    return {k: v for k, v in flat.items() if v is not None}

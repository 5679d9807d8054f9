"""The ``sync`` section of a memory directory's ``.minimem/config.json``.

The config file belongs to the wider memory tool; this module only reads
and writes its ``sync`` key and leaves every other key as it found it::

    {
      "sync": {
        "enabled": true,
        "path": "proj/",
        "include": ["**/*.md"],
        "exclude": [],
        "conflictStrategy": "manual"
      }
    }
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from minimem_sync.config import CONFLICT_STRATEGIES
from minimem_sync.sync.paths import DEFAULT_EXCLUDE, DEFAULT_INCLUDE, config_path
from minimem_sync.sync.storage import read_json, write_json_atomic

logger = logging.getLogger(__name__)


class DirectorySyncConfig(BaseModel):
    """Typed view of the ``sync`` section."""

    enabled: bool = False
    path: str | None = None
    include: list[str] = Field(default_factory=lambda: list(DEFAULT_INCLUDE))
    exclude: list[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDE))
    conflict_strategy: str | None = None

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "frozen": True,
    }

    @field_validator("conflict_strategy")
    @classmethod
    def _known_strategy(cls, v: str | None) -> str | None:
        if v is not None and v not in CONFLICT_STRATEGIES:
            logger.warning(
                "Unknown conflictStrategy '%s' (valid: %s); using the global setting",
                v,
                ", ".join(CONFLICT_STRATEGIES),
            )
            return None
        return v


def is_initialized(memory_dir: Path) -> bool:
    return config_path(memory_dir).is_file()


def read_local_config(memory_dir: Path) -> dict[str, Any]:
    """Whole config document, ``{}`` when missing or malformed."""
    data = read_json(config_path(memory_dir))
    return data if isinstance(data, dict) else {}


def get_sync_config(memory_dir: Path) -> DirectorySyncConfig:
    """Parsed ``sync`` section; defaults when absent or not an object."""
    section = read_local_config(memory_dir).get("sync")
    if not isinstance(section, dict):
        return DirectorySyncConfig()
    try:
        return DirectorySyncConfig.model_validate(section)
    except ValidationError as e:
        logger.warning("Ignoring malformed sync section in %s: %s", memory_dir, e)
        return DirectorySyncConfig()


def set_sync_section(memory_dir: Path, config: DirectorySyncConfig) -> None:
    """Write *config* as the ``sync`` key, preserving the other keys."""
    document = read_local_config(memory_dir)
    document["sync"] = config.model_dump(by_alias=True, exclude_none=True)
    write_json_atomic(config_path(memory_dir), document)
    logger.debug("Wrote sync section for %s", memory_dir)


def clear_sync_section(memory_dir: Path) -> bool:
    """Drop the ``sync`` key. Returns False if there was none."""
    document = read_local_config(memory_dir)
    if "sync" not in document:
        return False
    del document["sync"]
    write_json_atomic(config_path(memory_dir), document)
    logger.debug("Cleared sync section for %s", memory_dir)
    return True

"""
Hierarchical YAML configuration loader for minimem-sync.

Convention-based config file discovery, YAML ``!include`` support, env var
interpolation, and a shallow "project wins" merge. Also writes the global
file when a command records a value (``init-central`` stores the central
repository path there).

Usage:
    from minimem_sync.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Env var interpolation
# ---------------------------------------------------------------------------

# Matches ${VAR} and ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Replace ``${VAR}`` and ``${VAR:-default}`` with environment values.

    * ``${VAR}`` becomes ``os.environ.get(VAR, "")``.
    * ``${VAR:-default}`` uses *default* when VAR is unset or empty.
    * A literal ``${`` without a closing ``}`` is left alone.
    """

    def _replace(match: re.Match) -> str:
        env_val = os.environ.get(match.group(1))
        if env_val:
            return env_val
        default = match.group(2)
        return default if default is not None else ""

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _interpolate_recursive(obj: Any) -> Any:
    """Interpolate env vars in every string of a nested dict/list."""
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _interpolate_recursive(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_interpolate_recursive(item) for item in obj]
    return obj


# ---------------------------------------------------------------------------
# YAML !include support
# ---------------------------------------------------------------------------


class ConfigLoader(yaml.SafeLoader):
    """SafeLoader subclass with ``!include``.

    A dedicated subclass keeps the global ``yaml.SafeLoader`` untouched.
    """


def _include_constructor(
    loader: ConfigLoader, node: yaml.ScalarNode
) -> Any:
    """Handle ``!include path/to/file.yml``, relative to the including file."""
    include_path_str: str = loader.construct_scalar(node)

    if os.path.isabs(include_path_str):
        include_path = Path(include_path_str)
    else:
        include_path = Path(loader.name).resolve().parent / include_path_str
    include_path = include_path.resolve()

    include_stack: list[Path] = getattr(loader, "_include_stack", [])
    if include_path in include_stack:
        chain = " -> ".join(str(p) for p in include_stack)
        raise ValueError(
            f"Circular include detected: {chain} -> {include_path}"
        )

    if not include_path.exists():
        raise FileNotFoundError(
            f"Include file not found: {include_path} "
            f"(referenced from {Path(loader.name).resolve()})"
        )

    return _load_yaml_with_includes(
        include_path, _include_stack=include_stack + [include_path]
    )


ConfigLoader.add_constructor("!include", _include_constructor)


def _load_yaml_with_includes(
    path: Path,
    *,
    _include_stack: list[Path] | None = None,
) -> Any:
    path = path.resolve()
    if _include_stack is None:
        _include_stack = [path]

    with open(path, "r", encoding="utf-8") as fh:
        loader = ConfigLoader(fh)
        loader._include_stack = _include_stack  # type: ignore[attr-defined]
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def global_config_path() -> Path:
    """Return the XDG global config path (may not exist)."""
    xdg = os.environ.get("XDG_CONFIG_HOME")
    base = Path(xdg) if xdg else Path.home() / ".config"
    return base / "minimem" / "config.yml"


def discover_config_files() -> list[Path]:
    """Return existing config files in precedence order (highest first).

    Search order:
        1. ``MINIMEM_CONFIG`` env var (explicit single path)
        2. ``.minimem/config.yml`` in CWD (project-level)
        3. ``$XDG_CONFIG_HOME/minimem/config.yml``
           (default ``~/.config/minimem/config.yml``)
    """
    candidates: list[Path] = []

    env_path = os.environ.get("MINIMEM_CONFIG")
    if env_path:
        candidates.append(Path(env_path).expanduser().resolve())

    candidates.append(Path.cwd() / ".minimem" / "config.yml")
    candidates.append(global_config_path())

    return [p for p in candidates if p.exists()]


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def load_hierarchical_config() -> dict[str, Any]:
    """Load and merge all discovered config files.

    Files are applied from lowest precedence to highest; each file's
    top-level keys replace earlier ones (no deep merge). Env var
    interpolation runs after the merge.

    Returns an empty dict when no config file exists.
    """
    paths = discover_config_files()

    if not paths:
        logger.debug("No config files found, using defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        try:
            data = _load_yaml_with_includes(path)
        except Exception:
            logger.exception("Failed to load config file %s", path)
            raise

        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Config file %s has non-dict root (%s), skipping",
                path,
                type(data).__name__,
            )

    return _interpolate_recursive(merged)  # type: ignore[no-any-return]


# ---------------------------------------------------------------------------
# Writing
# ---------------------------------------------------------------------------

_STARTER_HEADER = """\
# minimem-sync configuration
#
# Values can also come from the environment:
#   MINIMEM_CENTRAL_REPO, MINIMEM_MACHINE_ID, MINIMEM_POLICY
#
# sync:
#   policy: three-way        # or two-way
#   conflict_strategy: manual   # or keep-both
#   max_parallel_hashes: 8
#
# logging:
#   level: INFO
#   file: null
"""


def update_global_config(
    updates: dict[str, Any], target: Path | None = None
) -> Path:
    """Set top-level keys in the global config file.

    Keys not in *updates* are preserved. The file is created with a
    commented starter header when missing, and replaced atomically.

    Args:
        updates: Top-level keys to set.
        target: File to update. Defaults to ``global_config_path()``.

    Returns:
        Path of the written file.
    """
    path = target or global_config_path()
    data: dict[str, Any] = {}
    header = ""
    if path.exists():
        loaded = _load_yaml_with_includes(path)
        if isinstance(loaded, dict):
            data = loaded
    else:
        header = _STARTER_HEADER

    data.update(updates)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(header)
            yaml.safe_dump(data, fh, default_flow_style=False, sort_keys=False)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise

    logger.info("Updated config %s: %s", path, ", ".join(updates))
    return path

"""Process settings for minimem-sync.

Resolved once at start-up and passed explicitly to every operation.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    MINIMEM_CENTRAL_REPO: Path of the central repository.
    MINIMEM_MACHINE_ID: Identifier of this machine (default: derived from host name).
    MINIMEM_POLICY: "three-way" (default) or "two-way".
    MINIMEM_CONFLICT_STRATEGY: "manual" (default) or "keep-both".
    MINIMEM_MAX_PARALLEL_HASHES: Files hashed concurrently (default: 8).
"""

import hashlib
import logging
import os
import socket
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

POLICIES = ("three-way", "two-way")
CONFLICT_STRATEGIES = ("manual", "keep-both")


@dataclass
class Settings:
    central_repo: Path | None
    machine_id: str
    policy: str = "three-way"
    conflict_strategy: str = "manual"
    max_parallel_hashes: int = 8
    debug: bool = False


def default_machine_id() -> str:
    """Return a machine id that is stable across runs on the same host.

    Host name plus a short digest of host name and home directory, so two
    users sharing a host name on different machines still differ.
    """
    host = socket.gethostname() or "localhost"
    digest = hashlib.sha256(
        f"{host}:{Path.home()}".encode("utf-8")
    ).hexdigest()[:8]
    return f"{host.split('.')[0].lower()}-{digest}"


def expand_path(value: str) -> Path:
    """Expand ``~`` and environment variables, then resolve."""
    return Path(os.path.expandvars(value)).expanduser().resolve()


def validate_settings(settings: Settings) -> None:
    """Raise ValueError if any setting is out of range."""
    if settings.policy not in POLICIES:
        raise ValueError(
            f"Invalid policy '{settings.policy}': must be one of {', '.join(POLICIES)}"
        )
    if settings.conflict_strategy not in CONFLICT_STRATEGIES:
        raise ValueError(
            f"Invalid conflict strategy '{settings.conflict_strategy}': "
            f"must be one of {', '.join(CONFLICT_STRATEGIES)}"
        )
    if not (1 <= settings.max_parallel_hashes <= 256):
        raise ValueError(
            f"Invalid max_parallel_hashes {settings.max_parallel_hashes}: must be between 1 and 256"
        )
    if not settings.machine_id.strip():
        raise ValueError(
            "Machine id cannot be empty. Set MINIMEM_MACHINE_ID or remove it to use the default."
        )


def load_settings(
    central_repo: str | None = None,
    machine_id: str | None = None,
    policy: str | None = None,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Settings:
    """Load settings with unified precedence.

    The caller is responsible for calling ``load_dotenv()`` first so .env
    values are visible through ``os.getenv()``.

    Args:
        central_repo: CLI override for the central repository path.
        machine_id: CLI override for the machine id.
        policy: CLI override for the resolution policy.
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Flattened YAML values (see
            ``config_schema.yaml_fallbacks``).

    Returns:
        Validated Settings instance. ``central_repo`` may be ``None``;
        commands that need it raise ``CentralRepoError`` themselves.

    Raises:
        ValueError: If a value is malformed.
    """
    fb = yaml_fallbacks or {}

    repo_raw = (
        central_repo
        or os.getenv("MINIMEM_CENTRAL_REPO")
        or fb.get("central_repo")
    )
    final_repo = expand_path(repo_raw.strip()) if repo_raw else None

    final_machine_id = (
        machine_id
        or os.getenv("MINIMEM_MACHINE_ID")
        or fb.get("machine_id")
        or default_machine_id()
    ).strip()

    final_policy = (
        policy
        or os.getenv("MINIMEM_POLICY")
        or fb.get("policy")
        or "three-way"
    ).strip()

    final_strategy = (
        os.getenv("MINIMEM_CONFLICT_STRATEGY")
        or fb.get("conflict_strategy")
        or "manual"
    ).strip()

    max_raw = os.getenv("MINIMEM_MAX_PARALLEL_HASHES")
    if max_raw is not None:
        try:
            final_max = int(max_raw)
        except ValueError:
            raise ValueError(
                f"Invalid MINIMEM_MAX_PARALLEL_HASHES '{max_raw}': must be a number between 1 and 256"
            ) from None
    else:
        final_max = int(fb.get("max_parallel_hashes", 8))

    settings = Settings(
        central_repo=final_repo,
        machine_id=final_machine_id,
        policy=final_policy,
        conflict_strategy=final_strategy,
        max_parallel_hashes=final_max,
        debug=debug,
    )

    validate_settings(settings)

    return settings

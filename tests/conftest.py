"""Shared pytest fixtures for minimem-sync tests."""

import json
import shutil
from pathlib import Path

import pytest

from minimem_sync.config import Settings

requires_git = pytest.mark.skipif(
    shutil.which("git") is None, reason="git executable not available"
)


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch, tmp_path_factory):
    """Keep tests away from the developer's real config and env vars."""
    for var in (
        "MINIMEM_CENTRAL_REPO",
        "MINIMEM_MACHINE_ID",
        "MINIMEM_POLICY",
        "MINIMEM_CONFLICT_STRATEGY",
        "MINIMEM_MAX_PARALLEL_HASHES",
        "MINIMEM_CONFIG",
        "LOG_LEVEL",
        "LOG_FILE",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv(
        "XDG_CONFIG_HOME", str(tmp_path_factory.mktemp("xdg-config"))
    )


def make_memory_dir(path: Path, config: dict | None = None) -> Path:
    """Create an initialized memory directory (``.minimem/config.json``)."""
    private = path / ".minimem"
    private.mkdir(parents=True, exist_ok=True)
    (private / "config.json").write_text(
        json.dumps(config if config is not None else {"embedding": {"provider": "none"}}),
        encoding="utf-8",
    )
    return path


def make_central_repo(path: Path) -> Path:
    """A central repository directory without running git."""
    path.mkdir(parents=True, exist_ok=True)
    (path / ".git").mkdir()
    (path / ".gitignore").write_text("*.db\nstaging/\nconflicts/\n", encoding="utf-8")
    (path / ".minimem-registry.json").write_text(
        json.dumps({"version": 1, "mappings": []}), encoding="utf-8"
    )
    return path


@pytest.fixture
def central_repo(tmp_path: Path) -> Path:
    return make_central_repo(tmp_path / "central")


@pytest.fixture
def memory_dir(tmp_path: Path) -> Path:
    return make_memory_dir(tmp_path / "memory")


@pytest.fixture
def settings(central_repo: Path) -> Settings:
    return Settings(central_repo=central_repo, machine_id="machine-a")

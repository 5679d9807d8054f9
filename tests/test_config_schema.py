"""Tests for the YAML configuration schema (config_schema.py)."""

import pytest
from pydantic import ValidationError

from minimem_sync.config_schema import (
    LoggingConfig,
    SyncDefaultsConfig,
    UnifiedConfig,
    build_config,
    yaml_fallbacks,
)


class TestUnifiedConfig:
    """UnifiedConfig top-level model."""

    def test_empty_dict_produces_valid_defaults(self):
        config = UnifiedConfig()

        assert config.central_repo is None
        assert config.machine_id is None
        assert config.sync.policy == "three-way"
        assert config.sync.conflict_strategy == "manual"
        assert config.sync.max_parallel_hashes == 8
        assert config.logging.level == "INFO"

    def test_full_config(self):
        config = UnifiedConfig(
            central_repo="~/central",
            machine_id="laptop",
            sync={
                "policy": "two-way",
                "conflict_strategy": "keep-both",
                "max_parallel_hashes": 16,
            },
            logging={"level": "DEBUG", "file": "/tmp/sync.log"},
        )

        assert config.sync.policy == "two-way"
        assert config.sync.conflict_strategy == "keep-both"
        assert config.logging.file == "/tmp/sync.log"

    def test_unknown_sections_ignored(self):
        config = UnifiedConfig(central_repo="/c", embedding={"provider": "x"})
        assert not hasattr(config, "embedding")

    def test_frozen_model_prevents_mutation(self):
        config = UnifiedConfig()
        with pytest.raises(ValidationError):
            config.central_repo = "/elsewhere"  # type: ignore[misc]


class TestSyncDefaultsConfig:
    def test_rejects_unknown_policy(self):
        with pytest.raises(ValidationError):
            SyncDefaultsConfig(policy="newest")

    def test_rejects_unknown_strategy(self):
        with pytest.raises(ValidationError):
            SyncDefaultsConfig(conflict_strategy="overwrite")

    @pytest.mark.parametrize("value", [0, 257])
    def test_max_parallel_bounds(self, value):
        with pytest.raises(ValidationError):
            SyncDefaultsConfig(max_parallel_hashes=value)


class TestLoggingConfig:
    def test_defaults(self):
        config = LoggingConfig()
        assert config.level == "INFO"
        assert config.file is None


class TestBuildConfig:
    def test_empty_dict_returns_defaults(self):
        assert build_config({}) == UnifiedConfig()

    def test_partial_sections_fill_defaults(self):
        config = build_config({"sync": {"policy": "two-way"}})

        assert config.sync.policy == "two-way"
        assert config.sync.max_parallel_hashes == 8
        assert config.logging == LoggingConfig()

    def test_invalid_value_raises(self):
        with pytest.raises(ValidationError):
            build_config({"sync": {"max_parallel_hashes": "lots"}})


class TestYamlFallbacks:
    def test_flattens_sections(self):
        config = build_config(
            {
                "central_repo": "/srv/central",
                "sync": {"policy": "two-way"},
                "logging": {"level": "DEBUG", "file": "/tmp/x.log"},
            }
        )

        assert yaml_fallbacks(config) == {
            "central_repo": "/srv/central",
            "policy": "two-way",
            "conflict_strategy": "manual",
            "max_parallel_hashes": 8,
            "log_level": "DEBUG",
            "log_file": "/tmp/x.log",
        }

    def test_none_values_dropped(self):
        flat = yaml_fallbacks(UnifiedConfig())

        assert "central_repo" not in flat
        assert "machine_id" not in flat
        assert "log_file" not in flat

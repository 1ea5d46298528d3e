"""Tests for flowcore/config_models.py"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from flowcore.config_models import (
    AnalyzerConfig,
    CacheTTLConfig,
    EngineConfig,
    ProfileConfig,
    load_config,
)

PROJECT_ROOT = Path(__file__).resolve().parents[3]


class TestEngineConfig:
    def test_defaults(self):
        config = EngineConfig()
        assert config.cache.ttl.task_seconds == 30.0
        assert config.invalidation.debounce_ms == 100
        assert config.analyzer.milestones == [100, 500, 1000, 2500, 5000, 10000]
        assert config.memory.max_conversation_summaries == 50
        assert config.profile.min_sessions_for_persona == 10
        assert config.context.max_characters == 24000
        assert config.storage.backend == "sqlite"

    def test_valid_overrides(self):
        config = EngineConfig(
            analyzer={"quick_win_max_minutes": 10},
            context={"assistant_name": "Juniper"},
        )
        assert config.analyzer.quick_win_max_minutes == 10
        assert config.context.assistant_name == "Juniper"

    def test_extra_keys_allowed(self):
        config = EngineConfig(context={"assistant_name": "Flow", "unknown_field": "value"})
        assert config.context.assistant_name == "Flow"

    def test_invalid_backend(self):
        with pytest.raises(ValidationError):
            EngineConfig(storage={"backend": "redis"})

    def test_negative_debounce_rejected(self):
        with pytest.raises(ValidationError):
            EngineConfig(invalidation={"debounce_ms": -1})


class TestCacheTTLConfig:
    def test_ordering_enforced(self):
        with pytest.raises(ValidationError, match="full <= task"):
            CacheTTLConfig(task_seconds=90)

    def test_full_may_equal_task(self):
        config = CacheTTLConfig(full_seconds=30, task_seconds=30)
        assert config.full_seconds == config.task_seconds

    def test_zero_ttl_rejected(self):
        with pytest.raises(ValidationError):
            CacheTTLConfig(full_seconds=0)


class TestOtherSections:
    def test_analyzer_bounds(self):
        with pytest.raises(ValidationError):
            AnalyzerConfig(burnout_after_hour=24)

    def test_profile_refresh_interval_may_be_zero(self):
        assert ProfileConfig(refresh_interval_hours=0).refresh_interval_hours == 0


class TestLoadConfig:
    def test_missing_file_yields_defaults(self, tmp_path):
        config = load_config(tmp_path / "nope.yaml")
        assert config == EngineConfig()

    def test_reads_flowcore_section(self, tmp_path):
        path = tmp_path / "flowcore.yaml"
        path.write_text("flowcore:\n  analyzer:\n    inactivity_hours: 24\n")
        assert load_config(path).analyzer.inactivity_hours == 24.0

    def test_reads_bare_document(self, tmp_path):
        path = tmp_path / "flowcore.yaml"
        path.write_text("context:\n  max_characters: 1000\n")
        assert load_config(path).context.max_characters == 1000

    def test_invalid_values_fall_back_to_defaults(self, tmp_path):
        path = tmp_path / "flowcore.yaml"
        path.write_text("flowcore:\n  cache:\n    ttl:\n      full_seconds: 500\n")
        assert load_config(path) == EngineConfig()

    def test_unparseable_yaml_falls_back_to_defaults(self, tmp_path):
        path = tmp_path / "flowcore.yaml"
        path.write_text("flowcore: [unclosed\n")
        assert load_config(path) == EngineConfig()

    def test_repository_config_is_valid(self):
        config = load_config(PROJECT_ROOT / "args" / "flowcore.yaml")
        assert config.cache.ttl.full_seconds == 15
        assert config.cache.ttl.memory_seconds == 180
        assert config.storage.path == "data/flowcore.db"

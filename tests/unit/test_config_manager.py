"""
Unit tests for ConfigManager and the static Config.
"""

import pytest

from evolvr.core.config import Config, ConfigManager, Environment


@pytest.mark.unit
class TestConfigManager:
    def test_reads_yaml_values(self):
        assert ConfigManager.get("progression.xp_per_level") == 1000
        assert ConfigManager.get("progression.multipliers.challenge_bonus") == 0.15

    def test_missing_key_returns_default(self):
        assert ConfigManager.get("progression.unknown") is None
        assert ConfigManager.get("progression.unknown", 42) == 42
        assert ConfigManager.get("progression.xp_per_level.deeper", "x") == "x"

    def test_override_wins_and_can_be_cleared(self):
        ConfigManager.set_override("progression.daily_xp_limit", 5000)
        assert ConfigManager.get("progression.daily_xp_limit") == 5000

        assert ConfigManager.clear_override("progression.daily_xp_limit") is True
        assert ConfigManager.get("progression.daily_xp_limit") == 2000

    def test_clearing_none_override_restores_yaml_value(self):
        ConfigManager.set_override("progression.daily_xp_limit", None)
        assert ConfigManager.get("progression.daily_xp_limit") is None

        assert ConfigManager.clear_override("progression.daily_xp_limit") is True
        assert ConfigManager.get("progression.daily_xp_limit") == 2000
        assert ConfigManager.clear_override("progression.daily_xp_limit") is False

    def test_override_survives_reinitialize(self):
        ConfigManager.set_override("badges.catalog_cache_ttl_seconds", 5)

        ConfigManager.initialize()

        assert ConfigManager.get("badges.catalog_cache_ttl_seconds") == 5

    def test_yaml_directory_overrides_builtins(self, tmp_path):
        (tmp_path / "progression.yaml").write_text(
            "progression:\n  xp_per_level: 250\n", encoding="utf-8"
        )

        ConfigManager.initialize(tmp_path)

        assert ConfigManager.get("progression.xp_per_level") == 250
        assert ConfigManager.get("progression.max_level") == 100
        assert ConfigManager.get_metrics()["yaml_files_loaded"] == 1

    def test_invalid_yaml_is_skipped(self, tmp_path):
        (tmp_path / "broken.yaml").write_text("progression: [unclosed\n", encoding="utf-8")

        ConfigManager.initialize(tmp_path)

        assert ConfigManager.get("progression.xp_per_level") == 1000
        assert ConfigManager.get_metrics()["errors"] == 1

    def test_missing_directory_uses_builtins(self, tmp_path):
        ConfigManager.initialize(tmp_path / "nope")

        assert ConfigManager.get_all_keys() == ["badges", "core", "progression", "tasks"]


@pytest.mark.unit
class TestConfig:
    def test_environment_from_string(self):
        assert Environment.from_string("PRODUCTION") is Environment.PRODUCTION
        assert Environment.from_string("bogus") is Environment.DEVELOPMENT

    def test_testing_environment_is_active(self):
        assert Config.is_testing() is True
        assert Config.is_production() is False

    def test_summary_reports_environment(self):
        summary = Config.get_config_summary()

        assert summary["environment"] == "testing"

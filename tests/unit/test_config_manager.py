"""
Tests for Configuration Manager
===============================

Tests file loading, environment overrides and validation.
"""

import json

import pytest
import yaml

from warden.core.config_manager import ConfigManager


@pytest.fixture
def yaml_config(tmp_path):
    path = tmp_path / "warden.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "load_default_roles": False,
                "engine": {"risk_ceiling": 80, "history_size": 10},
                "anomaly": {"confidence_threshold": 60.0},
                "audit": {"sink": "memory", "buffer_size": 5},
                "monitoring": {"log_level": "DEBUG", "anomaly_sweep_interval_sec": 30},
            }
        )
    )
    return path


class TestLoading:
    """Tests for loading configuration files."""

    def test_defaults(self):
        manager = ConfigManager()
        assert manager.engine.risk_ceiling == 90
        assert manager.audit.sink == "logging"
        assert manager.validate() == []

    def test_load_yaml(self, yaml_config):
        manager = ConfigManager()
        assert manager.load(yaml_config)

        assert manager.config.load_default_roles is False
        assert manager.engine.risk_ceiling == 80
        assert manager.engine.history_size == 10
        assert manager.engine.critical_priority_threshold == 7
        assert manager.anomaly.confidence_threshold == 60.0
        assert manager.audit.buffer_size == 5
        assert manager.monitoring.anomaly_sweep_interval_sec == 30
        assert manager.get("engine.risk_ceiling") == 80

    def test_load_json(self, tmp_path):
        path = tmp_path / "warden.json"
        path.write_text(json.dumps({"engine": {"risk_ceiling": 70}}))

        manager = ConfigManager(config_path=path)
        assert manager.engine.risk_ceiling == 70

    def test_missing_file(self, tmp_path):
        assert not ConfigManager().load(tmp_path / "absent.yaml")

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "warden.ini"
        path.write_text("[engine]\n")
        assert not ConfigManager().load(path)

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("engine: [unclosed\n")
        assert not ConfigManager().load(path)

    def test_unknown_keys_ignored(self, tmp_path):
        path = tmp_path / "warden.yaml"
        path.write_text(yaml.safe_dump({"engine": {"risk_ceiling": 85, "turbo": True}}))

        manager = ConfigManager(config_path=path)
        assert manager.engine.risk_ceiling == 85
        assert not hasattr(manager.engine, "turbo")


class TestOverrides:
    """Tests for environment and runtime overrides."""

    def test_env_override_beats_file(self, yaml_config, monkeypatch):
        monkeypatch.setenv("WARDEN_ENGINE__RISK_CEILING", "75")
        monkeypatch.setenv("WARDEN_AUDIT__HASH_CHAIN", "false")

        manager = ConfigManager(config_path=yaml_config)

        assert manager.engine.risk_ceiling == 75
        assert manager.audit.hash_chain is False

    def test_load_env_without_file(self, monkeypatch):
        monkeypatch.setenv("WARDEN_ANOMALY__SHORT_WINDOW_ALPHA", "0.3")

        manager = ConfigManager()
        manager.load_env()

        assert manager.anomaly.short_window_alpha == 0.3

    def test_runtime_set(self):
        manager = ConfigManager()
        manager.set("engine.conditional_grant_ttl_minutes", 30)
        assert manager.engine.conditional_grant_ttl_minutes == 30

    def test_get_default(self):
        assert ConfigManager().get("engine.missing", "fallback") == "fallback"


class TestValidation:
    """Tests for validate()."""

    @pytest.mark.parametrize(
        "key, value",
        [
            ("engine.risk_ceiling", 150),
            ("engine.conditional_grant_ttl_minutes", 0),
            ("engine.history_size", 0),
            ("anomaly.confidence_threshold", 0),
            ("anomaly.short_window_alpha", 1.5),
            ("anomaly.min_observations", 0),
            ("audit.buffer_size", 0),
            ("audit.sink", "kafka"),
            ("monitoring.log_level", "TRACE"),
            ("monitoring.anomaly_sweep_interval_sec", 0),
            ("monitoring.audit_flush_interval_sec", 0),
        ],
    )
    def test_invalid_values_reported(self, key, value):
        manager = ConfigManager()
        manager.set(key, value)
        assert manager.validate()

    def test_alpha_ordering(self):
        manager = ConfigManager()
        manager.set("anomaly.long_window_alpha", 0.5)
        manager.set("anomaly.short_window_alpha", 0.2)
        assert "anomaly.long_window_alpha must be < short_window_alpha" in manager.validate()


class TestPersistence:
    """Tests for save and reload."""

    def test_save_and_reload(self, yaml_config, tmp_path):
        manager = ConfigManager(config_path=yaml_config)
        manager.set("engine.risk_ceiling", 65)

        target = tmp_path / "saved.yaml"
        assert manager.save(target)

        reloaded = ConfigManager(config_path=target)
        assert reloaded.engine.risk_ceiling == 65
        assert reloaded.audit.sink == "memory"

    def test_save_without_path(self):
        assert not ConfigManager().save()

    def test_reload_without_path(self):
        assert not ConfigManager().reload()

    def test_info(self, yaml_config):
        info = ConfigManager(config_path=yaml_config).get_info()
        assert info["path"] == str(yaml_config)
        assert info["risk_ceiling"] == 80
        assert info["validation_errors"] == []

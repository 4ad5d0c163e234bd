# WARDEN_FEAT: config-manager-001
"""
WARDEN - Configuration Manager
==============================

Centralized configuration management for WARDEN.

Features:
- YAML/JSON configuration loading
- Environment variable overrides (WARDEN_ENGINE__RISK_CEILING=80)
- Configuration validation
- Hot reload support

Author: WARDEN Development Team
Version: 1.0.0
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from warden.engine.anomaly_detector import AnomalyConfig
from warden.engine.constants import (
    ANOMALY_SWEEP_INTERVAL_SEC,
    AUDIT_BUFFER_SIZE,
    AUDIT_FLUSH_INTERVAL_SEC,
    MAX_RISK_SCORE,
    MIN_RISK_SCORE,
)
from warden.engine.decision_engine import EngineConfig

logger = logging.getLogger("WARDEN_ConfigManager")

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass
class AuditConfig:
    """Audit log configuration."""

    buffer_size: int = AUDIT_BUFFER_SIZE
    hash_chain: bool = True
    sink: str = "logging"  # logging, memory, none


@dataclass
class MonitoringConfig:
    """Monitoring configuration."""

    log_level: str = "INFO"
    anomaly_sweep_interval_sec: int = ANOMALY_SWEEP_INTERVAL_SEC
    audit_flush_interval_sec: int = AUDIT_FLUSH_INTERVAL_SEC


@dataclass
class WardenConfig:
    """Complete system configuration."""

    load_default_roles: bool = True
    engine: EngineConfig = field(default_factory=EngineConfig)
    anomaly: AnomalyConfig = field(default_factory=AnomalyConfig)
    audit: AuditConfig = field(default_factory=AuditConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)


def _section(cls, raw: Dict[str, Any]):
    """Build a config dataclass from a raw mapping, ignoring unknown keys."""
    defaults = asdict(cls())
    return cls(**{k: raw.get(k, v) for k, v in defaults.items()})


class ConfigManager:
    """
    Configuration manager for WARDEN.

    Example:
        config_manager = ConfigManager()
        config_manager.load("config/warden.yaml")

        ceiling = config_manager.get("engine.risk_ceiling")
    """

    def __init__(self, config_path: Optional[Path] = None):
        self._config_path = config_path
        self._config: WardenConfig = WardenConfig()
        self._raw_config: Dict[str, Any] = {}
        self._loaded_at: Optional[datetime] = None
        self._env_prefix = "WARDEN_"

        if config_path:
            self.load(config_path)

        logger.info("ConfigManager initialized")

    def load(self, path: Union[str, Path]) -> bool:
        """
        Load configuration from file.

        Args:
            path: Path to config file (YAML or JSON)

        Returns:
            True if loaded successfully
        """
        path = Path(path)

        if not path.exists():
            logger.warning(f"Config file not found: {path}")
            return False

        try:
            with open(path, "r") as f:
                if path.suffix in [".yaml", ".yml"]:
                    self._raw_config = yaml.safe_load(f) or {}
                elif path.suffix == ".json":
                    self._raw_config = json.load(f)
                else:
                    logger.error(f"Unsupported config format: {path.suffix}")
                    return False

            # Apply environment overrides
            self._apply_env_overrides()

            # Parse into structured config
            self._parse_config()

            self._config_path = path
            self._loaded_at = datetime.now(timezone.utc)
            logger.info(f"Configuration loaded from: {path}")
            return True

        except (OSError, ValueError, TypeError, yaml.YAMLError) as e:
            logger.error(f"Failed to load config: {e}")
            return False

    def load_env(self) -> None:
        """Apply environment overrides without a config file."""
        self._apply_env_overrides()
        self._parse_config()

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides."""
        for key, value in os.environ.items():
            if key.startswith(self._env_prefix):
                config_key = key[len(self._env_prefix):].lower().replace("__", ".")
                self._set_nested(config_key, self._parse_value(value))

    def _parse_value(self, value: str) -> Any:
        """Parse string value to appropriate type."""
        if value.lower() in ("true", "false"):
            return value.lower() == "true"

        try:
            return int(value)
        except ValueError:
            pass

        try:
            return float(value)
        except ValueError:
            pass

        return value

    def _set_nested(self, key: str, value: Any) -> None:
        """Set a nested config value using dot notation."""
        parts = key.split(".")
        current = self._raw_config

        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        current[parts[-1]] = value

    def _parse_config(self) -> None:
        """Parse raw config into structured config."""
        raw = self._raw_config

        self._config.load_default_roles = bool(raw.get("load_default_roles", True))

        if isinstance(raw.get("engine"), dict):
            self._config.engine = _section(EngineConfig, raw["engine"])

        if isinstance(raw.get("anomaly"), dict):
            self._config.anomaly = _section(AnomalyConfig, raw["anomaly"])

        if isinstance(raw.get("audit"), dict):
            self._config.audit = _section(AuditConfig, raw["audit"])

        if isinstance(raw.get("monitoring"), dict):
            self._config.monitoring = _section(MonitoringConfig, raw["monitoring"])

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by key.

        Args:
            key: Dot-notation key (e.g., "engine.risk_ceiling")
            default: Default value if not found
        """
        parts = key.split(".")
        current = self._raw_config

        for part in parts:
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default

        return current

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value (runtime only)."""
        self._set_nested(key, value)
        self._parse_config()

    @property
    def config(self) -> WardenConfig:
        return self._config

    @property
    def engine(self) -> EngineConfig:
        return self._config.engine

    @property
    def anomaly(self) -> AnomalyConfig:
        return self._config.anomaly

    @property
    def audit(self) -> AuditConfig:
        return self._config.audit

    @property
    def monitoring(self) -> MonitoringConfig:
        return self._config.monitoring

    def reload(self) -> bool:
        """Reload configuration from file."""
        if self._config_path:
            return self.load(self._config_path)
        return False

    def save(self, path: Optional[Path] = None) -> bool:
        """
        Save configuration to file.

        Args:
            path: Optional path (uses loaded path if not specified)

        Returns:
            True if saved successfully
        """
        path = Path(path) if path else self._config_path

        if not path:
            logger.error("No config path specified")
            return False

        try:
            with open(path, "w") as f:
                if Path(path).suffix in [".yaml", ".yml"]:
                    yaml.safe_dump(self._raw_config, f, default_flow_style=False)
                else:
                    json.dump(self._raw_config, f, indent=2)

            logger.info(f"Configuration saved to: {path}")
            return True

        except OSError as e:
            logger.error(f"Failed to save config: {e}")
            return False

    def validate(self) -> List[str]:
        """
        Validate configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []
        engine = self._config.engine
        anomaly = self._config.anomaly

        if not MIN_RISK_SCORE <= engine.risk_ceiling <= MAX_RISK_SCORE:
            errors.append("engine.risk_ceiling must be within 0-100")

        if engine.critical_priority_threshold < 0:
            errors.append("engine.critical_priority_threshold must be >= 0")

        if engine.conditional_grant_ttl_minutes <= 0:
            errors.append("engine.conditional_grant_ttl_minutes must be > 0")

        if engine.history_size < 1:
            errors.append("engine.history_size must be >= 1")

        if not 0 < anomaly.confidence_threshold <= 100:
            errors.append("anomaly.confidence_threshold must be within (0, 100]")

        for name in ("long_window_alpha", "short_window_alpha"):
            alpha = getattr(anomaly, name)
            if not 0 < alpha < 1:
                errors.append(f"anomaly.{name} must be within (0, 1)")

        if anomaly.long_window_alpha >= anomaly.short_window_alpha:
            errors.append("anomaly.long_window_alpha must be < short_window_alpha")

        if anomaly.min_observations < 1:
            errors.append("anomaly.min_observations must be >= 1")

        if self._config.audit.buffer_size < 1:
            errors.append("audit.buffer_size must be >= 1")

        if self._config.audit.sink not in ("logging", "memory", "none"):
            errors.append("audit.sink must be 'logging', 'memory' or 'none'")

        if str(self._config.monitoring.log_level).upper() not in LOG_LEVELS:
            errors.append(f"monitoring.log_level must be one of {', '.join(LOG_LEVELS)}")

        if self._config.monitoring.anomaly_sweep_interval_sec <= 0:
            errors.append("monitoring.anomaly_sweep_interval_sec must be > 0")

        if self._config.monitoring.audit_flush_interval_sec <= 0:
            errors.append("monitoring.audit_flush_interval_sec must be > 0")

        return errors

    def get_info(self) -> Dict[str, Any]:
        """Get configuration info."""
        return {
            "path": str(self._config_path) if self._config_path else None,
            "loaded_at": self._loaded_at.isoformat() if self._loaded_at else None,
            "risk_ceiling": self._config.engine.risk_ceiling,
            "confidence_threshold": self._config.anomaly.confidence_threshold,
            "audit_sink": self._config.audit.sink,
            "validation_errors": self.validate(),
        }


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    "AuditConfig",
    "MonitoringConfig",
    "WardenConfig",
    "ConfigManager",
]

# WARDEN Core Infrastructure
"""
Core infrastructure components for WARDEN.

Modules:
    config_manager: Structured YAML/JSON configuration with env overrides
    settings: Environment settings
    encryption: Field value encryption
"""

from warden.core.config_manager import (
    AuditConfig,
    MonitoringConfig,
    WardenConfig,
    ConfigManager,
)
from warden.core.settings import Settings, get_settings
from warden.core.encryption import FieldEncryptor, get_field_encryptor

__all__ = [
    "AuditConfig",
    "MonitoringConfig",
    "WardenConfig",
    "ConfigManager",
    "Settings",
    "get_settings",
    "FieldEncryptor",
    "get_field_encryptor",
]

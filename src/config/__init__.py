"""
Configuration Management Module.

Handles loading and validation of:
- Test environment configuration files (YAML/JSON) with JSON Schema validation.
- Environment-variable overrides for browser, auxiliary services and Xray.
"""

from src.config.loader import ConfigLoader, ConfigurationError
from src.config.schema_registry import SchemaRegistry, SchemaValidationError
from src.config.settings import (
    EnvironmentSettings,
    XraySettings,
    load_settings,
    load_xray_settings,
    reset_settings,
)

__all__ = [
    "ConfigLoader",
    "ConfigurationError",
    "SchemaRegistry",
    "SchemaValidationError",
    "EnvironmentSettings",
    "XraySettings",
    "load_settings",
    "load_xray_settings",
    "reset_settings",
]

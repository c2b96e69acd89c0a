"""
Configuration package for the CDC relay.

This package provides centralized configuration management with:
- Environment variable support
- Configuration file loading (YAML/JSON)
- Type-safe configuration classes
- Validation utilities
"""

from .settings import (
    AppConfig,
    KafkaConfig,
    SourceConfig,
    RelayConfig,
    LoggingConfig,
    MonitoringConfig,
    Environment,
    config as app_config
)

from .validator import (
    ConfigValidator,
    validate_configuration,
)

from .loader import (
    ConfigLoader,
    load_configuration,
    DEFAULT_CONFIG_YAML,
    DEFAULT_CONFIG_JSON
)

__all__ = [
    # Main configuration classes
    "AppConfig",
    "KafkaConfig",
    "SourceConfig",
    "RelayConfig",
    "LoggingConfig",
    "MonitoringConfig",
    "Environment",

    # Global config instance
    "app_config",

    # Validation utilities
    "ConfigValidator",
    "validate_configuration",

    # Loading utilities
    "ConfigLoader",
    "load_configuration",
    "DEFAULT_CONFIG_YAML",
    "DEFAULT_CONFIG_JSON",
]

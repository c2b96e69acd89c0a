"""
Configuration loader utilities.

Provides functions to load configuration from various sources:
- Environment variables (primary)
- Configuration files (YAML/JSON)
- Default values (fallback)
"""

import os
import json
import logging
import dataclasses
import yaml
from pathlib import Path
from typing import Dict, Any, Optional, Type

from .settings import (
    AppConfig,
    Environment,
    KafkaConfig,
    SourceConfig,
    RelayConfig,
    LoggingConfig,
    MonitoringConfig,
)

logger = logging.getLogger(__name__)


SECTIONS: Dict[str, Type] = {
    "kafka": KafkaConfig,
    "source": SourceConfig,
    "relay": RelayConfig,
    "logging": LoggingConfig,
    "monitoring": MonitoringConfig,
}

# Environment variable -> dotted config path
ENV_MAPPINGS = {
    'ENVIRONMENT': 'environment',
    'DEBUG': 'debug',
    'APP_NAME': 'app_name',
    'APP_VERSION': 'version',
    # Kafka settings
    'KAFKA_BOOTSTRAP_SERVERS': 'kafka.bootstrap_servers',
    'KAFKA_CLIENT_ID': 'kafka.client_id',
    'KAFKA_PRODUCER_ACKS': 'kafka.acks',
    'KAFKA_PRODUCER_IDEMPOTENCE': 'kafka.enable_idempotence',
    'KAFKA_PRODUCER_DELIVERY_TIMEOUT_MS': 'kafka.delivery_timeout_ms',
    'KAFKA_PRODUCER_RETRIES': 'kafka.retries',
    'KAFKA_PRODUCER_LINGER_MS': 'kafka.linger_ms',
    'KAFKA_PRODUCER_POLL_INTERVAL': 'kafka.poll_interval_seconds',
    # Source settings
    'CDC_SOURCE_TOPICS': 'source.topics',
    'CDC_SOURCE_GROUP_ID': 'source.group_id',
    'CDC_SOURCE_AUTO_OFFSET_RESET': 'source.auto_offset_reset',
    'CDC_SOURCE_ENABLE_AUTO_COMMIT': 'source.enable_auto_commit',
    'CDC_SOURCE_SESSION_TIMEOUT_MS': 'source.session_timeout_ms',
    'CDC_SOURCE_POLL_TIMEOUT': 'source.poll_timeout_seconds',
    'CDC_SOURCE_QUEUE_SIZE': 'source.queue_size',
    'CDC_SOURCE_WORKERS': 'source.workers',
    'CDC_SOURCE_SKIP_TOMBSTONES': 'source.skip_tombstones',
    # Relay settings
    'CDC_OUT_TOPIC': 'relay.output_topic',
    'CDC_OUT_DLT_TOPIC': 'relay.dead_letter_topic',
    'CDC_FLUSH_TIMEOUT': 'relay.flush_timeout_seconds',
    # Logging settings
    'LOG_LEVEL': 'logging.level',
    'LOG_FORMAT': 'logging.format',
    'LOG_DATE_FORMAT': 'logging.date_format',
    'LOG_TO_FILE': 'logging.log_to_file',
    'LOG_FILE_PATH': 'logging.log_file_path',
    'LOG_MAX_FILE_SIZE': 'logging.max_file_size',
    'LOG_BACKUP_COUNT': 'logging.backup_count',
    'LOG_STRUCTURED': 'logging.structured',
    # Monitoring settings
    'MONITORING_ENABLED': 'monitoring.enabled',
    'HEALTH_CHECK_PORT': 'monitoring.health_check_port',
    'PROMETHEUS_ENABLED': 'monitoring.prometheus_enabled',
    'PROMETHEUS_PATH': 'monitoring.prometheus_path',
    'COLLECT_RELAY_METRICS': 'monitoring.collect_relay_metrics',
    'COLLECT_SYSTEM_METRICS': 'monitoring.collect_system_metrics',
}

INT_FIELDS = {
    'delivery_timeout_ms', 'retries', 'linger_ms', 'session_timeout_ms', 'queue_size',
    'workers', 'max_file_size', 'backup_count', 'health_check_port',
}
FLOAT_FIELDS = {'poll_interval_seconds', 'poll_timeout_seconds', 'flush_timeout_seconds'}
BOOL_FIELDS = {
    'debug', 'enable_idempotence', 'enable_auto_commit', 'skip_tombstones', 'log_to_file',
    'structured', 'enabled', 'prometheus_enabled', 'collect_relay_metrics',
    'collect_system_metrics',
}
LIST_FIELDS = {'bootstrap_servers', 'topics'}


class ConfigLoader:
    """Configuration loader with support for multiple sources."""

    def __init__(self):
        self.config_paths = [
            Path.cwd() / "config" / "relay.yaml",
            Path.cwd() / "config" / "relay.json",
            Path.home() / ".cdc_relay" / "config.yaml",
            Path.home() / ".cdc_relay" / "config.json",
        ]

    def load_from_file(self, config_path: Optional[Path] = None) -> Dict[str, Any]:
        """
        Load configuration from file.

        Args:
            config_path: Specific config file path, or None to try defaults

        Returns:
            Configuration dictionary from file, or empty dict if not found
        """
        paths_to_try = [config_path] if config_path else self.config_paths

        for path in paths_to_try:
            if path.exists():
                try:
                    with open(path, 'r', encoding='utf-8') as f:
                        if path.suffix.lower() in ['.yaml', '.yml']:
                            return yaml.safe_load(f) or {}
                        elif path.suffix.lower() == '.json':
                            return json.load(f) or {}
                except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
                    logger.warning(f"Failed to load config from {path}: {e}")
                    continue

        return {}

    def merge_configs(self, file_config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge file configuration with environment variables.

        Environment variables take precedence over file config.
        """
        merged = {
            key: dict(value) if isinstance(value, dict) else value
            for key, value in file_config.items()
        }

        for env_var, config_path in ENV_MAPPINGS.items():
            env_value = os.getenv(env_var)
            if env_value is not None:
                self._set_nested_value(merged, config_path, env_value)

        return merged

    def _set_nested_value(self, config: Dict[str, Any], path: str, value: Any) -> None:
        """Set a value in a nested dictionary using dot notation."""
        keys = path.split('.')
        current = config

        for key in keys[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]

        current[keys[-1]] = _coerce(keys[-1], value)

    def build_config(self, values: Dict[str, Any]) -> AppConfig:
        """Build an AppConfig from a merged configuration dictionary."""
        sections = {}
        for name, section_cls in SECTIONS.items():
            sections[name] = _build_section(section_cls, values.get(name) or {})

        env_str = str(values.get("environment", "development")).lower()
        try:
            environment = Environment(env_str)
        except ValueError:
            logger.warning(f"Unknown environment '{env_str}', using development")
            environment = Environment.DEVELOPMENT

        return AppConfig(
            environment=environment,
            debug=_coerce("debug", values.get("debug", False)),
            app_name=values.get("app_name", "cdc-relay"),
            version=str(values.get("version", "0.1.0")),
            **sections,
        )

    def load_config(self, config_path: Optional[Path] = None) -> AppConfig:
        """
        Load and create AppConfig from available sources.

        Args:
            config_path: Optional specific config file path

        Returns:
            Fully configured AppConfig instance
        """
        file_config = self.load_from_file(config_path)
        merged_config = self.merge_configs(file_config)
        return self.build_config(merged_config)


def _coerce(name: str, value: Any) -> Any:
    """Convert raw file/env values to the type of the named field."""
    if name in INT_FIELDS:
        return int(value)
    if name in FLOAT_FIELDS:
        return float(value)
    if name in BOOL_FIELDS:
        if isinstance(value, bool):
            return value
        return str(value).lower() in ('true', '1', 'yes', 'on')
    if name in LIST_FIELDS:
        if isinstance(value, (list, tuple)):
            return [str(item).strip() for item in value]
        return [item.strip() for item in str(value).split(',') if item.strip()]
    return value


def _build_section(section_cls: Type, values: Dict[str, Any]):
    known = {f.name for f in dataclasses.fields(section_cls)}
    unknown = set(values) - known
    if unknown:
        logger.warning(f"Ignoring unknown {section_cls.__name__} keys: {sorted(unknown)}")
    return section_cls(**{k: _coerce(k, v) for k, v in values.items() if k in known})


def load_configuration(config_path: Optional[Path] = None) -> AppConfig:
    """
    Convenience function to load application configuration.

    Args:
        config_path: Optional path to configuration file

    Returns:
        Configured AppConfig instance
    """
    loader = ConfigLoader()
    return loader.load_config(config_path)


# Example configuration file template
DEFAULT_CONFIG_YAML = """
environment: development
debug: false

kafka:
  bootstrap_servers:
    - localhost:29092
  acks: all
  enable_idempotence: true
  delivery_timeout_ms: 120000
  retries: 5
  linger_ms: 5

source:
  topics:
    - oracle-server.INVENTORY.CUSTOMERS
  group_id: cdc_relay
  workers: 4
  queue_size: 1000

relay:
  output_topic: cdc.out
  dead_letter_topic: cdc.out.dlt

logging:
  level: INFO
  structured: false

monitoring:
  enabled: true
  health_check_port: 8001
"""

DEFAULT_CONFIG_JSON = json.dumps(yaml.safe_load(DEFAULT_CONFIG_YAML), indent=2)

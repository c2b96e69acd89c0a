"""
Centralized configuration management for the CDC relay.

This module provides:
- Environment variable parsing into typed configuration classes
- Default values for every setting
- Configuration validation
- Support for different deployment environments
"""

import os
from typing import List, Optional, Dict, Any
from dataclasses import dataclass, field
from enum import Enum


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_list(name: str, default: str) -> List[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


class Environment(str, Enum):
    """Deployment environment enumeration."""
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


@dataclass
class KafkaConfig:
    """Kafka connection and producer configuration."""
    bootstrap_servers: List[str] = field(default_factory=lambda: ["localhost:29092"])
    client_id: str = "cdc-relay"

    # Producer reliability settings
    acks: str = "all"
    enable_idempotence: bool = True
    delivery_timeout_ms: int = 120000
    retries: int = 5
    linger_ms: int = 5

    # Delivery callback polling
    poll_interval_seconds: float = 0.1

    @classmethod
    def from_env(cls) -> "KafkaConfig":
        """Create Kafka config from environment variables."""
        return cls(
            bootstrap_servers=_env_list("KAFKA_BOOTSTRAP_SERVERS", "localhost:29092"),
            client_id=os.getenv("KAFKA_CLIENT_ID", "cdc-relay"),
            acks=os.getenv("KAFKA_PRODUCER_ACKS", "all"),
            enable_idempotence=_env_bool("KAFKA_PRODUCER_IDEMPOTENCE", "true"),
            delivery_timeout_ms=int(os.getenv("KAFKA_PRODUCER_DELIVERY_TIMEOUT_MS", "120000")),
            retries=int(os.getenv("KAFKA_PRODUCER_RETRIES", "5")),
            linger_ms=int(os.getenv("KAFKA_PRODUCER_LINGER_MS", "5")),
            poll_interval_seconds=float(os.getenv("KAFKA_PRODUCER_POLL_INTERVAL", "0.1")),
        )

    def producer_settings(self) -> Dict[str, Any]:
        """librdkafka settings for the output producer."""
        return {
            "bootstrap.servers": ",".join(self.bootstrap_servers),
            "client.id": self.client_id,
            "acks": self.acks,
            "enable.idempotence": self.enable_idempotence,
            "delivery.timeout.ms": self.delivery_timeout_ms,
            "retries": self.retries,
            "linger.ms": self.linger_ms,
        }


@dataclass
class SourceConfig:
    """Configuration for consuming raw change envelopes from the connector topics."""
    topics: List[str] = field(default_factory=lambda: ["oracle-server.INVENTORY.CUSTOMERS"])
    group_id: str = "cdc_relay"
    auto_offset_reset: str = "earliest"
    enable_auto_commit: bool = True
    session_timeout_ms: int = 30000
    poll_timeout_seconds: float = 1.0

    # Work queue feeding the normalization workers
    queue_size: int = 1000
    workers: int = 4
    skip_tombstones: bool = True

    @classmethod
    def from_env(cls) -> "SourceConfig":
        """Create source config from environment variables."""
        return cls(
            topics=_env_list("CDC_SOURCE_TOPICS", "oracle-server.INVENTORY.CUSTOMERS"),
            group_id=os.getenv("CDC_SOURCE_GROUP_ID", "cdc_relay"),
            auto_offset_reset=os.getenv("CDC_SOURCE_AUTO_OFFSET_RESET", "earliest"),
            enable_auto_commit=_env_bool("CDC_SOURCE_ENABLE_AUTO_COMMIT", "true"),
            session_timeout_ms=int(os.getenv("CDC_SOURCE_SESSION_TIMEOUT_MS", "30000")),
            poll_timeout_seconds=float(os.getenv("CDC_SOURCE_POLL_TIMEOUT", "1.0")),
            queue_size=int(os.getenv("CDC_SOURCE_QUEUE_SIZE", "1000")),
            workers=int(os.getenv("CDC_SOURCE_WORKERS", "4")),
            skip_tombstones=_env_bool("CDC_SOURCE_SKIP_TOMBSTONES", "true"),
        )

    def consumer_settings(self, bootstrap_servers: List[str]) -> Dict[str, Any]:
        """librdkafka settings for the source consumer."""
        return {
            "bootstrap.servers": ",".join(bootstrap_servers),
            "group.id": self.group_id,
            "auto.offset.reset": self.auto_offset_reset,
            "enable.auto.commit": self.enable_auto_commit,
            # Offsets are stored by the source once an envelope has been handled
            "enable.auto.offset.store": False,
            "session.timeout.ms": self.session_timeout_ms,
        }


@dataclass
class RelayConfig:
    """Output and dead-letter topic configuration."""
    output_topic: str = "cdc.out"
    dead_letter_topic: str = "cdc.out.dlt"
    flush_timeout_seconds: float = 10.0

    @classmethod
    def from_env(cls) -> "RelayConfig":
        """Create relay config from environment variables."""
        return cls(
            output_topic=os.getenv("CDC_OUT_TOPIC", "cdc.out"),
            dead_letter_topic=os.getenv("CDC_OUT_DLT_TOPIC", "cdc.out.dlt"),
            flush_timeout_seconds=float(os.getenv("CDC_FLUSH_TIMEOUT", "10.0")),
        )


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"

    # File logging
    log_to_file: bool = False
    log_file_path: Optional[str] = None
    max_file_size: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5

    # Structured logging (JSON)
    structured: bool = False

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        """Create logging config from environment variables."""
        return cls(
            level=os.getenv("LOG_LEVEL", "INFO").upper(),
            format=os.getenv("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"),
            date_format=os.getenv("LOG_DATE_FORMAT", "%Y-%m-%d %H:%M:%S"),
            log_to_file=_env_bool("LOG_TO_FILE", "false"),
            log_file_path=os.getenv("LOG_FILE_PATH"),
            max_file_size=int(os.getenv("LOG_MAX_FILE_SIZE", str(10 * 1024 * 1024))),
            backup_count=int(os.getenv("LOG_BACKUP_COUNT", "5")),
            structured=_env_bool("LOG_STRUCTURED", "false"),
        )


@dataclass
class MonitoringConfig:
    """Monitoring and metrics configuration."""
    enabled: bool = True
    health_check_port: int = 8001

    prometheus_enabled: bool = True
    prometheus_path: str = "/metrics"

    collect_relay_metrics: bool = True
    collect_system_metrics: bool = True

    @classmethod
    def from_env(cls) -> "MonitoringConfig":
        """Create monitoring config from environment variables."""
        return cls(
            enabled=_env_bool("MONITORING_ENABLED", "true"),
            health_check_port=int(os.getenv("HEALTH_CHECK_PORT", "8001")),
            prometheus_enabled=_env_bool("PROMETHEUS_ENABLED", "true"),
            prometheus_path=os.getenv("PROMETHEUS_PATH", "/metrics"),
            collect_relay_metrics=_env_bool("COLLECT_RELAY_METRICS", "true"),
            collect_system_metrics=_env_bool("COLLECT_SYSTEM_METRICS", "true"),
        )


@dataclass
class AppConfig:
    """Main application configuration."""
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False

    # Component configs
    kafka: KafkaConfig = field(default_factory=KafkaConfig.from_env)
    source: SourceConfig = field(default_factory=SourceConfig.from_env)
    relay: RelayConfig = field(default_factory=RelayConfig.from_env)
    logging: LoggingConfig = field(default_factory=LoggingConfig.from_env)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig.from_env)

    # Application settings
    app_name: str = "cdc-relay"
    version: str = "0.1.0"

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create application config from environment variables."""
        env_str = os.getenv("ENVIRONMENT", "development").lower()
        try:
            environment = Environment(env_str)
        except ValueError:
            environment = Environment.DEVELOPMENT

        return cls(
            environment=environment,
            debug=_env_bool("DEBUG", "false"),
            app_name=os.getenv("APP_NAME", "cdc-relay"),
            version=os.getenv("APP_VERSION", "0.1.0"),
        )

    def validate(self) -> None:
        """Validate configuration values."""
        if not self.kafka.bootstrap_servers:
            raise ValueError("At least one Kafka bootstrap server must be configured")

        if not self.source.topics:
            raise ValueError("At least one source topic must be configured")

        if not self.relay.output_topic:
            raise ValueError("Output topic must be configured")

        if not self.relay.dead_letter_topic:
            raise ValueError("Dead-letter topic must be configured")

        if self.relay.dead_letter_topic == self.relay.output_topic:
            raise ValueError("Dead-letter topic must differ from the output topic")

        if self.source.workers <= 0:
            raise ValueError("Worker count must be positive")

        if self.source.queue_size <= 0:
            raise ValueError("Queue size must be positive")

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary for logging/serialization."""
        return {
            "environment": self.environment.value,
            "debug": self.debug,
            "app_name": self.app_name,
            "version": self.version,
            "kafka": {
                "bootstrap_servers": self.kafka.bootstrap_servers,
                "client_id": self.kafka.client_id,
                "acks": self.kafka.acks,
                "retries": self.kafka.retries,
            },
            "source": {
                "topics": self.source.topics,
                "group_id": self.source.group_id,
                "workers": self.source.workers,
                "queue_size": self.source.queue_size,
            },
            "relay": {
                "output_topic": self.relay.output_topic,
                "dead_letter_topic": self.relay.dead_letter_topic,
            },
        }


# Global configuration instance
config = AppConfig.from_env()

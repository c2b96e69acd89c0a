"""
Test configuration and fixtures for the CDC relay tests.

This module provides:
- Test configuration overrides
- Sample Debezium envelopes
- Mock Kafka messages and producers
- Recording output/dead-letter channels
"""

import json
import logging
import time
from concurrent.futures import Future
from typing import Any, Dict, List, Optional, Tuple
from unittest.mock import MagicMock

import pytest

from cdc_relay.config import AppConfig, KafkaConfig, SourceConfig, RelayConfig
from cdc_relay.monitoring import set_monitoring_service


@pytest.fixture
def test_config(monkeypatch) -> AppConfig:
    """Create test configuration."""
    for name, value in {
        "ENVIRONMENT": "testing",
        "DEBUG": "true",
        "LOG_LEVEL": "WARNING",
        "LOG_STRUCTURED": "false",
        "MONITORING_ENABLED": "false",
        "KAFKA_BOOTSTRAP_SERVERS": "localhost:9094",
    }.items():
        monkeypatch.setenv(name, value)

    return AppConfig.from_env()


@pytest.fixture
def kafka_config() -> KafkaConfig:
    return KafkaConfig(bootstrap_servers=["localhost:9094"], poll_interval_seconds=0.01)


@pytest.fixture
def source_config() -> SourceConfig:
    return SourceConfig(
        topics=["oracle-server.INVENTORY.CUSTOMERS"],
        group_id="test-relay",
        poll_timeout_seconds=0.01,
        queue_size=10,
        workers=2,
    )


@pytest.fixture
def relay_config() -> RelayConfig:
    return RelayConfig(output_topic="cdc.out", dead_letter_topic="cdc.out.dlt", flush_timeout_seconds=1.0)


@pytest.fixture(autouse=True)
def no_global_monitoring():
    """Keep the global monitoring service unset between tests."""
    set_monitoring_service(None)
    yield
    set_monitoring_service(None)


@pytest.fixture
def restore_root_logger():
    """Restore root logger handlers changed by setup_logging()."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def sample_create_envelope() -> Dict[str, Any]:
    """Debezium Oracle insert envelope (payload only, schemas disabled)."""
    return {
        "before": None,
        "after": {
            "ID": "21",
            "NAME": "Alice",
            "EMAIL": "alice@example.com",
        },
        "source": {
            "version": "2.7.3.Final",
            "connector": "oracle",
            "name": "oracle-server",
            "ts_ms": 1703123456000,
            "snapshot": "false",
            "db": "ORCLPDB1",
            "schema": "INVENTORY",
            "table": "CUSTOMERS",
            "txId": "0a001b00c7030000",
            "scn": "2148371",
        },
        "op": "c",
        "ts_ms": 1703123456789,
        "transaction": None,
    }


@pytest.fixture
def sample_update_envelope() -> Dict[str, Any]:
    return {
        "before": {"ID": "21", "NAME": "Alice", "EMAIL": "alice@example.com"},
        "after": {"ID": "21", "NAME": "Alice Smith", "EMAIL": "alice.smith@example.com"},
        "source": {"connector": "oracle", "schema": "INVENTORY", "table": "CUSTOMERS"},
        "op": "u",
        "ts_ms": 1703123457789,
    }


@pytest.fixture
def sample_delete_envelope() -> Dict[str, Any]:
    return {
        "before": {"ID": "7", "NAME": "Bob", "EMAIL": "bob@example.com"},
        "after": None,
        "source": {"connector": "oracle", "schema": "INVENTORY", "table": "CUSTOMERS"},
        "op": "d",
        "ts_ms": 1703123458789,
    }


class MockMessage:
    """Stand-in for confluent_kafka.Message."""

    def __init__(self, value, topic="oracle-server.INVENTORY.CUSTOMERS", partition=0, offset=0, key=None, error=None):
        self._value = value
        self._topic = topic
        self._partition = partition
        self._offset = offset
        self._key = key
        self._error = error

    def value(self):
        return self._value

    def topic(self):
        return self._topic

    def partition(self):
        return self._partition

    def offset(self):
        return self._offset

    def key(self):
        return self._key

    def error(self):
        return self._error


@pytest.fixture
def make_message():
    """Factory building mock Kafka messages from envelopes."""
    def factory(envelope, **kwargs) -> MockMessage:
        if isinstance(envelope, (dict, list)):
            envelope = json.dumps(envelope).encode("utf-8")
        return MockMessage(envelope, **kwargs)

    return factory


class RecordingOutputChannel:
    """Output channel whose futures are resolved by the test."""

    def __init__(self, topic: str = "cdc.out"):
        self.topic = topic
        self.sent: List[Tuple[Optional[str], str, Future]] = []

    def send(self, key, body) -> Future:
        future: Future = Future()
        self.sent.append((key, body, future))
        return future


class RecordingDeadLetterChannel:
    """Dead-letter channel that keeps what it receives."""

    def __init__(self):
        self.records = []

    def send(self, record) -> None:
        self.records.append(record)


@pytest.fixture
def output_channel() -> RecordingOutputChannel:
    return RecordingOutputChannel()


@pytest.fixture
def dead_letter_channel() -> RecordingDeadLetterChannel:
    return RecordingDeadLetterChannel()


@pytest.fixture
def mock_producer():
    """
    MagicMock in place of confluent_kafka.Producer.

    Set ``mock_producer.delivery_errors[topic]`` to make deliveries to
    that topic fail; delivery callbacks fire synchronously from produce().
    """
    producer = MagicMock()
    producer.delivery_errors = {}
    producer.produced = []

    def produce(topic, value=None, key=None, headers=None, on_delivery=None):
        producer.produced.append({"topic": topic, "value": value, "key": key, "headers": headers})
        if on_delivery is not None:
            on_delivery(producer.delivery_errors.get(topic), MagicMock())

    producer.produce.side_effect = produce
    producer.poll.side_effect = lambda timeout: time.sleep(0.001) or 0
    producer.flush.return_value = 0
    producer.__len__.return_value = 0
    return producer


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )

"""
Unit tests for configuration parsing, loading and validation.
"""

import json
from unittest.mock import MagicMock

import pytest
import yaml
from confluent_kafka import KafkaException

from cdc_relay.config import (
    AppConfig,
    ConfigLoader,
    ConfigValidator,
    Environment,
    KafkaConfig,
    RelayConfig,
    SourceConfig,
    DEFAULT_CONFIG_JSON,
    DEFAULT_CONFIG_YAML,
    load_configuration,
)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove relay-related environment variables."""
    from cdc_relay.config.loader import ENV_MAPPINGS

    for name in ENV_MAPPINGS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.mark.unit
class TestSettings:
    """Test cases for environment-driven settings."""

    def test_defaults(self, clean_env):
        config = AppConfig.from_env()

        assert config.environment == Environment.DEVELOPMENT
        assert config.kafka.bootstrap_servers == ["localhost:29092"]
        assert config.relay.output_topic == "cdc.out"
        assert config.relay.dead_letter_topic == "cdc.out.dlt"
        assert config.source.skip_tombstones is True

    def test_producer_reliability_defaults(self):
        settings = KafkaConfig(bootstrap_servers=["localhost:29092"]).producer_settings()

        assert settings == {
            "bootstrap.servers": "localhost:29092",
            "client.id": "cdc-relay",
            "acks": "all",
            "enable.idempotence": True,
            "delivery.timeout.ms": 120000,
            "retries": 5,
            "linger.ms": 5,
        }

    def test_environment_overrides(self, clean_env):
        clean_env.setenv("ENVIRONMENT", "PRODUCTION")
        clean_env.setenv("KAFKA_BOOTSTRAP_SERVERS", "b1:9092, b2:9092,")
        clean_env.setenv("CDC_OUT_TOPIC", "orders.out")
        clean_env.setenv("CDC_OUT_DLT_TOPIC", "orders.out.dlt")
        clean_env.setenv("CDC_SOURCE_WORKERS", "8")
        clean_env.setenv("KAFKA_PRODUCER_IDEMPOTENCE", "FALSE")

        config = AppConfig.from_env()

        assert config.environment == Environment.PRODUCTION
        assert config.kafka.bootstrap_servers == ["b1:9092", "b2:9092"]
        assert config.kafka.enable_idempotence is False
        assert config.relay.output_topic == "orders.out"
        assert config.relay.dead_letter_topic == "orders.out.dlt"
        assert config.source.workers == 8

    def test_unknown_environment_falls_back(self, clean_env):
        clean_env.setenv("ENVIRONMENT", "moon")
        assert AppConfig.from_env().environment == Environment.DEVELOPMENT

    def test_consumer_settings(self):
        settings = SourceConfig(group_id="g1").consumer_settings(["b1:9092"])
        assert settings["bootstrap.servers"] == "b1:9092"
        assert settings["group.id"] == "g1"
        assert settings["enable.auto.commit"] is True
        assert settings["enable.auto.offset.store"] is False

    def test_to_dict(self, test_config):
        data = test_config.to_dict()
        assert data["environment"] == "testing"
        assert data["relay"] == {"output_topic": "cdc.out", "dead_letter_topic": "cdc.out.dlt"}
        json.dumps(data)


@pytest.mark.unit
class TestValidate:
    """Test cases for AppConfig.validate()."""

    def test_valid(self, test_config):
        test_config.validate()

    @pytest.mark.parametrize("mutate, message", [
        (lambda c: setattr(c.kafka, "bootstrap_servers", []), "bootstrap server"),
        (lambda c: setattr(c.source, "topics", []), "source topic"),
        (lambda c: setattr(c.relay, "output_topic", ""), "Output topic"),
        (lambda c: setattr(c.relay, "dead_letter_topic", ""), "Dead-letter topic"),
        (lambda c: setattr(c.relay, "dead_letter_topic", c.relay.output_topic), "must differ"),
        (lambda c: setattr(c.source, "workers", 0), "Worker count"),
        (lambda c: setattr(c.source, "queue_size", -1), "Queue size"),
    ])
    def test_invalid(self, test_config, mutate, message):
        mutate(test_config)
        with pytest.raises(ValueError, match=message):
            test_config.validate()


@pytest.mark.unit
class TestConfigLoader:
    """Test cases for file and environment loading."""

    def test_yaml_file(self, clean_env, tmp_path):
        path = tmp_path / "relay.yaml"
        path.write_text(
            "environment: staging\n"
            "kafka:\n"
            "  bootstrap_servers: [k1:9092, k2:9092]\n"
            "  linger_ms: 20\n"
            "relay:\n"
            "  output_topic: customers.out\n"
            "  dead_letter_topic: customers.out.dlt\n"
            "source:\n"
            "  workers: '2'\n"
            "  skip_tombstones: 'no'\n",
            encoding="utf-8",
        )

        config = load_configuration(path)

        assert config.environment == Environment.STAGING
        assert config.kafka.bootstrap_servers == ["k1:9092", "k2:9092"]
        assert config.kafka.linger_ms == 20
        assert config.relay.output_topic == "customers.out"
        assert config.source.workers == 2
        assert config.source.skip_tombstones is False

    def test_json_file(self, clean_env, tmp_path):
        path = tmp_path / "relay.json"
        path.write_text(json.dumps({"relay": {"output_topic": "a", "dead_letter_topic": "b"}}), encoding="utf-8")

        config = load_configuration(path)

        assert config.relay == RelayConfig(output_topic="a", dead_letter_topic="b")

    def test_environment_wins_over_file(self, clean_env, tmp_path):
        path = tmp_path / "relay.yaml"
        path.write_text("relay:\n  output_topic: from-file\nkafka:\n  retries: 1\n", encoding="utf-8")
        clean_env.setenv("CDC_OUT_TOPIC", "from-env")
        clean_env.setenv("KAFKA_PRODUCER_RETRIES", "9")

        config = load_configuration(path)

        assert config.relay.output_topic == "from-env"
        assert config.kafka.retries == 9

    def test_missing_file_uses_defaults(self, clean_env, tmp_path):
        config = load_configuration(tmp_path / "absent.yaml")
        assert config.relay.output_topic == "cdc.out"
        assert config.kafka.bootstrap_servers == ["localhost:29092"]

    def test_broken_file_is_ignored(self, clean_env, tmp_path, caplog):
        path = tmp_path / "relay.yaml"
        path.write_text("kafka: [unclosed", encoding="utf-8")

        assert ConfigLoader().load_from_file(path) == {}
        assert "Failed to load config" in caplog.text

    def test_unknown_keys_are_ignored(self, clean_env, caplog):
        config = ConfigLoader().build_config({"relay": {"output_topic": "x", "retry_forever": True}})

        assert config.relay.output_topic == "x"
        assert "retry_forever" in caplog.text

    def test_unknown_environment_warns(self, clean_env, caplog):
        config = ConfigLoader().build_config({"environment": "qa"})

        assert config.environment == Environment.DEVELOPMENT
        assert "Unknown environment" in caplog.text

    def test_file_dict_not_mutated(self, clean_env):
        file_config = {"relay": {"output_topic": "file"}}
        clean_env.setenv("CDC_OUT_TOPIC", "env")

        ConfigLoader().merge_configs(file_config)

        assert file_config == {"relay": {"output_topic": "file"}}

    def test_default_templates_agree(self, clean_env):
        loader = ConfigLoader()
        from_yaml = loader.build_config(yaml.safe_load(DEFAULT_CONFIG_YAML))
        from_json = loader.build_config(json.loads(DEFAULT_CONFIG_JSON))

        assert from_yaml.to_dict() == from_json.to_dict()
        from_yaml.validate()


class FakeTopicMetadata:
    def __init__(self, partitions):
        self.partitions = {p: MagicMock() for p in range(partitions)}


@pytest.mark.unit
class TestConfigValidator:
    """Test cases for ConfigValidator."""

    @pytest.fixture
    def admin_client(self, test_config):
        client = MagicMock()
        topics = list(test_config.source.topics) + [
            test_config.relay.output_topic,
            test_config.relay.dead_letter_topic,
        ]
        client.list_topics.return_value.topics = {topic: FakeTopicMetadata(3) for topic in topics}
        return client

    async def test_healthy(self, test_config, admin_client):
        result = await ConfigValidator(test_config, admin_client).validate_all()

        assert result["overall_status"] == "healthy"
        assert result["kafka"]["status"] == "healthy"
        assert result["kafka"]["topic_partitions"]["cdc.out"] == 3

    async def test_missing_topics_warn(self, test_config, admin_client):
        del admin_client.list_topics.return_value.topics["cdc.out.dlt"]

        result = await ConfigValidator(test_config, admin_client).validate_all()

        assert result["overall_status"] == "healthy"
        assert result["kafka"]["status"] == "warning"
        assert result["kafka"]["missing_topics"] == ["cdc.out.dlt"]

    async def test_unreachable_cluster(self, test_config, admin_client):
        admin_client.list_topics.side_effect = KafkaException("transport failure")

        result = await ConfigValidator(test_config, admin_client).validate_all()

        assert result["overall_status"] == "unhealthy"
        assert result["failed_components"] == ["kafka"]

    async def test_invalid_settings_skip_kafka(self, test_config, admin_client):
        test_config.relay.dead_letter_topic = test_config.relay.output_topic

        result = await ConfigValidator(test_config, admin_client).validate_all()

        assert result["overall_status"] == "unhealthy"
        assert "kafka" not in result
        admin_client.list_topics.assert_not_called()

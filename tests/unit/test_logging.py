"""
Unit tests for logging setup and correlation IDs.
"""

import json
import logging

import pytest

from cdc_relay.config import Environment, LoggingConfig
from cdc_relay.core.logging import (
    create_log_context,
    get_correlation_id,
    setup_logging,
)
from cdc_relay.relay.normalizer import normalize_change_event


@pytest.mark.unit
class TestCorrelationContext:
    """Test cases for the log context manager."""

    def test_context_sets_and_resets(self):
        assert get_correlation_id() is None

        with create_log_context(corr_id="cdc:0:42"):
            assert get_correlation_id() == "cdc:0:42"

        assert get_correlation_id() is None

    def test_nested_context_inherits(self):
        with create_log_context(corr_id="outer"):
            with create_log_context():
                assert get_correlation_id() == "outer"


@pytest.mark.unit
class TestSetupLogging:
    """Test cases for setup_logging()."""

    def test_structured_output(self, restore_root_logger, capsys):
        setup_logging(LoggingConfig(level="INFO", structured=True), Environment.TESTING)

        with create_log_context(corr_id="oracle-server.INVENTORY.CUSTOMERS:0:7"):
            logging.getLogger("cdc_relay.relay.service").info("Relayed CREATE event key=21")

        record = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert record["message"] == "Relayed CREATE event key=21"
        assert record["level"] == "INFO"
        assert record["name"] == "cdc_relay.relay.service"
        assert record["correlation_id"] == "oracle-server.INVENTORY.CUSTOMERS:0:7"
        assert record["service"] == "cdc-relay"

    def test_explicit_correlation_id_wins(self, restore_root_logger, capsys):
        setup_logging(LoggingConfig(level="INFO", structured=True), Environment.TESTING)

        logging.getLogger("cdc_relay.relay.publisher").warning(
            "Publish failed", extra={"correlation_id": "cdc:1:9"}
        )

        record = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert record["correlation_id"] == "cdc:1:9"

    def test_normalizer_warning_carries_correlation_id(self, restore_root_logger, capsys):
        setup_logging(LoggingConfig(level="INFO", structured=True), Environment.TESTING)

        with create_log_context(corr_id="oracle-server.INVENTORY.CUSTOMERS:0:3"):
            normalize_change_event("{not json")

        record = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert record["level"] == "WARNING"
        assert record["name"] == "cdc_relay.relay.normalizer"
        assert record["correlation_id"] == "oracle-server.INVENTORY.CUSTOMERS:0:3"

    def test_plain_text_output(self, restore_root_logger, capsys):
        setup_logging(
            LoggingConfig(level="WARNING", format="%(levelname)s %(name)s %(message)s"),
            Environment.TESTING,
        )

        logging.getLogger("cdc_relay").info("hidden")
        logging.getLogger("cdc_relay").warning("shown")

        out = capsys.readouterr().out
        assert "hidden" not in out
        assert "WARNING cdc_relay shown" in out

    def test_file_logging(self, restore_root_logger, tmp_path):
        log_file = tmp_path / "logs" / "relay.log"
        setup_logging(
            LoggingConfig(level="INFO", log_to_file=True, log_file_path=str(log_file)),
            Environment.TESTING,
        )

        logging.getLogger("cdc_relay").info("to file")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert "to file" in log_file.read_text(encoding="utf-8")

    def test_production_quiets_third_party(self, restore_root_logger):
        setup_logging(LoggingConfig(), Environment.PRODUCTION)
        assert logging.getLogger("confluent_kafka").level == logging.WARNING

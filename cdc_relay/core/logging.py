"""
Logging configuration for the CDC relay.

This module provides:
- Structured logging with JSON output
- Console and rotating file handlers
- Log correlation IDs carried in context variables
- Environment-specific logging levels
"""

import os
import sys
import logging
import logging.handlers
from datetime import datetime, timezone
from typing import Optional
from pathlib import Path
from contextvars import ContextVar
from pythonjsonlogger.json import JsonFormatter

from ..config import LoggingConfig, Environment


# Context variable for log correlation
correlation_id: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)


class StructuredFormatter(JsonFormatter):
    """JSON formatter with service and correlation fields."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        log_record['timestamp'] = datetime.now(timezone.utc).isoformat()
        log_record['level'] = record.levelname

        # Records logged from the producer poll thread carry their id explicitly
        corr_id = getattr(record, 'correlation_id', None) or correlation_id.get()
        if corr_id:
            log_record['correlation_id'] = corr_id

        log_record['service'] = 'cdc-relay'
        log_record['version'] = os.getenv('APP_VERSION', '0.1.0')
        log_record['environment'] = os.getenv('ENVIRONMENT', 'development')


class CorrelationFilter(logging.Filter):
    """Attach the current correlation ID to plain-text records."""

    def filter(self, record):
        if not hasattr(record, 'correlation_id'):
            record.correlation_id = correlation_id.get()
        return True


class LogContextManager:
    """Context manager for log correlation."""

    def __init__(self, corr_id: Optional[str] = None):
        self.corr_id = corr_id or correlation_id.get()
        self.token = None

    def __enter__(self):
        self.token = correlation_id.set(self.corr_id)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        correlation_id.reset(self.token)


def setup_logging(config: LoggingConfig, environment: Environment) -> None:
    """
    Set up logging configuration.

    Args:
        config: Logging configuration
        environment: Deployment environment
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, config.level))

    if config.structured:
        formatter = StructuredFormatter(
            fmt='%(timestamp)s %(level)s %(name)s %(message)s',
            datefmt='%Y-%m-%dT%H:%M:%SZ'
        )
    else:
        formatter = logging.Formatter(
            fmt=config.format,
            datefmt=config.date_format
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, config.level))
    console_handler.setFormatter(formatter)
    console_handler.addFilter(CorrelationFilter())
    root_logger.addHandler(console_handler)

    if config.log_to_file and config.log_file_path:
        log_path = Path(config.log_file_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            filename=str(log_path),
            maxBytes=config.max_file_size,
            backupCount=config.backup_count,
            encoding='utf-8'
        )
        file_handler.setLevel(getattr(logging, config.level))
        file_handler.setFormatter(formatter)
        file_handler.addFilter(CorrelationFilter())
        root_logger.addHandler(file_handler)

    if environment == Environment.PRODUCTION:
        # Third-party noise
        logging.getLogger('confluent_kafka').setLevel(logging.WARNING)
        logging.getLogger('aiohttp.access').setLevel(logging.WARNING)
    elif environment == Environment.DEVELOPMENT:
        logging.getLogger('cdc_relay.relay').setLevel(logging.DEBUG)


def get_correlation_id() -> Optional[str]:
    """Get current correlation ID."""
    return correlation_id.get()


def create_log_context(**kwargs):
    """Create a log context manager."""
    return LogContextManager(**kwargs)


logger = logging.getLogger('cdc_relay')

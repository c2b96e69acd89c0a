"""
Main entry point for the CDC relay.

This module provides:
- Application initialization and configuration
- Service orchestration
- Health checks and monitoring endpoints
- Graceful shutdown handling
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from .config import AppConfig, load_configuration, validate_configuration
from .core.logging import setup_logging
from .monitoring import MonitoringService, set_monitoring_service
from .relay import CDCRelayService, run_relay_service

logger = logging.getLogger(__name__)


class CDCRelayApplication:
    """
    Main CDC relay application.

    Orchestrates all services and manages application lifecycle.
    """

    def __init__(self, config: AppConfig):
        self.config = config
        self.monitoring_service: Optional[MonitoringService] = None

    async def initialize(self) -> None:
        """Validate configuration and start monitoring."""
        logger.info("Initializing CDC Relay Application...")

        logger.info("Validating configuration...")
        validation_result = await validate_configuration(self.config)

        if validation_result.get("overall_status") != "healthy":
            logger.error(f"Configuration validation failed: {validation_result}")
            sys.exit(1)

        logger.info("Configuration validation successful")

        if self.config.monitoring.enabled:
            logger.info("Initializing monitoring service...")
            self.monitoring_service = MonitoringService(self.config.monitoring)
            set_monitoring_service(self.monitoring_service)
            await self.monitoring_service.start()

        logger.info("CDC Relay Application initialized successfully")

    def _register_health_check(self, service: CDCRelayService) -> None:
        if self.monitoring_service:
            self.monitoring_service.health_checker.add_check(service.health_check)

    async def run(self) -> None:
        """Run the complete application."""
        await self.initialize()

        try:
            await run_relay_service(
                self.config.kafka,
                self.config.source,
                self.config.relay,
                on_started=self._register_health_check,
            )
        finally:
            await self.cleanup()

    async def cleanup(self) -> None:
        """Clean up all resources."""
        logger.info("Cleaning up application resources...")

        if self.monitoring_service:
            await self.monitoring_service.stop()
            set_monitoring_service(None)

        logger.info("Application cleanup completed")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Relay normalized CDC events to Kafka")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML or JSON configuration file (environment variables take precedence)",
    )
    return parser.parse_args(argv)


async def main(argv=None) -> None:
    """Main application entry point."""
    args = parse_args(argv)
    config = load_configuration(args.config)

    setup_logging(config.logging, config.environment)

    logger.info(f"Starting CDC Relay v{config.version}")
    logger.info(f"Environment: {config.environment.value}")
    logger.debug(f"Configuration: {config.to_dict()}")

    app = CDCRelayApplication(config)

    try:
        await app.run()
    except Exception as e:
        logger.error(f"Application failed: {e}")
        sys.exit(1)


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()

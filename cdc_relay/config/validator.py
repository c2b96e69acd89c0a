"""
Configuration validation utilities.

Checks that the Kafka cluster is reachable and that the source, output and
dead-letter topics are usable before the relay starts.
"""

import asyncio
import logging
from typing import Dict, Any, Optional

from confluent_kafka import KafkaException
from confluent_kafka.admin import AdminClient

from .settings import AppConfig

logger = logging.getLogger(__name__)


class ConfigValidator:
    """Configuration validator for the CDC relay."""

    def __init__(self, config: AppConfig, admin_client: Optional[AdminClient] = None):
        self.config = config
        self._admin_client = admin_client

    async def validate_all(self) -> Dict[str, Any]:
        """
        Validate all configuration components.

        Returns:
            Dict containing validation results for each component
        """
        results: Dict[str, Any] = {"config": self.validate_settings()}
        if results["config"]["status"] == "healthy":
            results["kafka"] = await self.validate_kafka()

        failed_components = [
            component for component, status in results.items()
            if isinstance(status, dict) and status.get("status") == "failed"
        ]

        results["overall_status"] = "unhealthy" if failed_components else "healthy"
        if failed_components:
            results["failed_components"] = failed_components

        return results

    def validate_settings(self) -> Dict[str, Any]:
        """Run the static checks from AppConfig.validate()."""
        try:
            self.config.validate()
        except ValueError as e:
            return {"status": "failed", "error": str(e)}
        return {"status": "healthy"}

    async def validate_kafka(self) -> Dict[str, Any]:
        """
        Validate Kafka connectivity and topic accessibility.

        Missing topics only produce a warning since brokers commonly
        auto-create them on first produce.
        """
        loop = asyncio.get_running_loop()
        try:
            metadata = await loop.run_in_executor(None, self._list_topics)
        except KafkaException as e:
            logger.error(f"Kafka validation failed: {e}")
            return {
                "status": "failed",
                "error": str(e),
                "bootstrap_servers": self.config.kafka.bootstrap_servers,
            }

        available_topics = set(metadata.topics.keys())
        required_topics = set(self.config.source.topics) | {
            self.config.relay.output_topic,
            self.config.relay.dead_letter_topic,
        }
        missing_topics = required_topics - available_topics

        if missing_topics:
            logger.warning(f"Topics not present yet: {sorted(missing_topics)}")
            return {
                "status": "warning",
                "message": f"Some topics do not exist yet: {sorted(missing_topics)}",
                "missing_topics": sorted(missing_topics),
            }

        return {
            "status": "healthy",
            "message": "Kafka connectivity and topic validation successful",
            "topic_partitions": {
                topic: len(metadata.topics[topic].partitions)
                for topic in sorted(required_topics)
            },
        }

    def _list_topics(self):
        if self._admin_client is None:
            self._admin_client = AdminClient({
                "bootstrap.servers": ",".join(self.config.kafka.bootstrap_servers),
            })
        return self._admin_client.list_topics(timeout=10.0)


async def validate_configuration(config: AppConfig) -> Dict[str, Any]:
    """
    Convenience function to validate configuration.

    Args:
        config: Application configuration to validate

    Returns:
        Validation results dictionary
    """
    validator = ConfigValidator(config)
    return await validator.validate_all()

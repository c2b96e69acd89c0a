"""
CDC relay service.

Wires the change event source, the normalizer and the reliable
publisher together and manages their lifecycle.
"""

import asyncio
import signal
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from contextlib import asynccontextmanager
from dataclasses import dataclass

from ..config import KafkaConfig, SourceConfig, RelayConfig
from ..core.logging import create_log_context
from ..monitoring.middleware import (
    record_envelope_received,
    record_event_normalized,
    record_handler_error,
)
from .normalizer import EventNormalizer
from .producer import KafkaProducerClient
from .publisher import KafkaDeadLetterChannel, KafkaOutputChannel, ReliablePublisher
from .source import ChangeEventSource

logger = logging.getLogger(__name__)


@dataclass
class RelayMetrics:
    """In-process counters reported by the health endpoint."""
    envelopes_received: int = 0
    events_published: int = 0
    handler_errors: int = 0
    last_envelope_timestamp: Optional[datetime] = None
    start_time: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert metrics to dictionary."""
        now = datetime.now(timezone.utc)
        return {
            "envelopes_received": self.envelopes_received,
            "events_published": self.events_published,
            "handler_errors": self.handler_errors,
            "last_envelope_timestamp": self.last_envelope_timestamp.isoformat() if self.last_envelope_timestamp else None,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "uptime_seconds": (now - (self.start_time or now)).total_seconds(),
        }


class CDCRelayService:
    """
    Normalizes every raw envelope from the source and publishes it.

    Envelopes are handled independently; the only shared state is the
    metrics snapshot, guarded by a lock.
    """

    def __init__(
        self,
        kafka_config: KafkaConfig,
        source_config: SourceConfig,
        relay_config: RelayConfig,
        producer_client: Optional[KafkaProducerClient] = None,
        normalizer: Optional[EventNormalizer] = None,
        publisher: Optional[ReliablePublisher] = None,
        source: Optional[ChangeEventSource] = None,
    ):
        self.kafka_config = kafka_config
        self.source_config = source_config
        self.relay_config = relay_config

        self.producer_client = producer_client or KafkaProducerClient(kafka_config)
        self.normalizer = normalizer or EventNormalizer()
        self.publisher = publisher or ReliablePublisher(
            KafkaOutputChannel(self.producer_client, relay_config.output_topic),
            KafkaDeadLetterChannel(self.producer_client, relay_config.dead_letter_topic),
            output_topic=relay_config.output_topic,
        )
        self.source = source or ChangeEventSource(kafka_config, source_config, self.handle_message)

        self.metrics = RelayMetrics(start_time=datetime.now(timezone.utc))
        self._metrics_lock = threading.Lock()

        logger.info("CDC Relay Service initialized")

    async def start(self) -> None:
        """Start producing and consuming; returns when the source stops."""
        logger.info(
            f"Starting CDC Relay Service: {self.source_config.topics} -> "
            f"{self.relay_config.output_topic} (dead letters: {self.relay_config.dead_letter_topic})"
        )
        self.producer_client.start()
        try:
            await self.source.run()
        finally:
            await self._cleanup()

    async def stop(self) -> None:
        """Stop the relay gracefully."""
        self.source.stop()

    def handle_message(self, message) -> None:
        """Envelope handler for a consumed Kafka message."""
        corr_id = f"{message.topic()}:{message.partition()}:{message.offset()}"
        with create_log_context(corr_id=corr_id):
            record_envelope_received(message.topic())
            self.handle_envelope(message.value())

    def handle_envelope(self, raw) -> None:
        """Normalize one raw envelope and hand it to the publisher."""
        with self._metrics_lock:
            self.metrics.envelopes_received += 1
            self.metrics.last_envelope_timestamp = datetime.now(timezone.utc)

        try:
            event = self.normalizer.normalize(raw)
            record_event_normalized(event.operation_type.value)
            self.publisher.publish(event.key, event.body)
        except Exception as e:
            logger.error(f"Failed to relay envelope: {e}")
            record_handler_error(type(e).__name__)
            with self._metrics_lock:
                self.metrics.handler_errors += 1
            return

        with self._metrics_lock:
            self.metrics.events_published += 1
        logger.debug(f"Relayed {event.operation_type.value} event key={event.key}")

    async def _cleanup(self) -> None:
        logger.info("Cleaning up relay resources...")
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            None, self.producer_client.close, self.relay_config.flush_timeout_seconds
        )
        logger.info("Relay cleanup completed")

    def get_metrics(self) -> Dict[str, Any]:
        """Get current relay metrics."""
        with self._metrics_lock:
            return self.metrics.to_dict()

    async def health_check(self) -> Dict[str, Any]:
        """Health check registered with the monitoring service."""
        healthy = self.source.running and self.producer_client.running
        return {
            "status": "healthy" if healthy else "unhealthy",
            "source_running": self.source.running,
            "producer_running": self.producer_client.running,
            "pending_deliveries": self.producer_client.pending(),
            "queued_envelopes": self.source.queue.qsize(),
            "metrics": self.get_metrics(),
        }


@asynccontextmanager
async def create_relay_service(
    kafka_config: KafkaConfig,
    source_config: SourceConfig,
    relay_config: RelayConfig,
):
    """
    Context manager for relay service lifecycle.

    Usage:
        async with create_relay_service(kafka, source, relay) as service:
            await service.start()
    """
    service = CDCRelayService(kafka_config, source_config, relay_config)

    try:
        yield service
    finally:
        await service.stop()


async def run_relay_service(
    kafka_config: KafkaConfig,
    source_config: SourceConfig,
    relay_config: RelayConfig,
    on_started=None,
) -> None:
    """
    Run the relay with SIGINT/SIGTERM triggering a graceful shutdown.

    Args:
        on_started: Optional callback receiving the service before it starts
    """
    loop = asyncio.get_running_loop()

    async with create_relay_service(kafka_config, source_config, relay_config) as service:
        def signal_handler(signum):
            logger.info(f"Received signal {signum}, initiating shutdown...")
            service.source.stop()

        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(signum, signal_handler, signum)

        if on_started:
            on_started(service)

        try:
            await service.start()
        finally:
            for signum in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(signum)

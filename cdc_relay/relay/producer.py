"""
Kafka producer client shared by the output and dead-letter channels.

confluent_kafka only fires delivery callbacks from ``poll()``/``flush()``,
so a background thread keeps polling while the client is running.
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

from confluent_kafka import Producer

from ..config import KafkaConfig

logger = logging.getLogger(__name__)

DeliveryCallback = Callable[[Any, Any], None]


class KafkaProducerClient:
    """Owns one confluent_kafka Producer and its delivery poll thread."""

    def __init__(
        self,
        kafka_config: KafkaConfig,
        producer: Optional[Producer] = None,
    ):
        self.kafka_config = kafka_config
        self.producer = producer or Producer(kafka_config.producer_settings())

        self._stop_event = threading.Event()
        self._poll_thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._poll_thread is not None and self._poll_thread.is_alive()

    def start(self) -> None:
        """Start the delivery poll thread."""
        if self.running:
            return

        self._stop_event.clear()
        self._poll_thread = threading.Thread(
            target=self._poll_loop,
            name="cdc-relay-delivery-poller",
            daemon=True,
        )
        self._poll_thread.start()
        logger.info("Kafka producer delivery poller started")

    def produce(
        self,
        topic: str,
        value: str,
        key: Optional[str] = None,
        headers: Optional[List[Tuple[str, bytes]]] = None,
        on_delivery: Optional[DeliveryCallback] = None,
    ) -> None:
        """
        Enqueue a message without waiting for acknowledgment.

        Raises:
            BufferError: if the local producer queue is full
            KafkaException: if librdkafka rejects the message outright
            UnicodeEncodeError: if the key or value is not valid UTF-8 text
        """
        kwargs: Dict[str, Any] = {"value": value}
        if on_delivery is not None:
            kwargs["on_delivery"] = on_delivery
        if key is not None:
            kwargs["key"] = key
        if headers:
            kwargs["headers"] = headers
        self.producer.produce(topic, **kwargs)

    def pending(self) -> int:
        """Number of messages awaiting delivery."""
        return len(self.producer)

    def close(self, timeout: float = 10.0) -> int:
        """
        Stop polling and flush outstanding messages.

        Returns:
            Number of messages still undelivered after the flush
        """
        self._stop_event.set()
        if self._poll_thread is not None:
            self._poll_thread.join(timeout=timeout)
            self._poll_thread = None

        remaining = self.producer.flush(timeout)
        if remaining:
            logger.warning(f"{remaining} messages were not delivered before shutdown")
        else:
            logger.info("Kafka producer flushed")
        return remaining

    def _poll_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.producer.poll(self.kafka_config.poll_interval_seconds)
            except Exception as e:
                # A raising delivery callback must not kill the poller
                logger.error(f"Error while polling producer: {e}")

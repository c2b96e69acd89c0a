"""
Reliable publishing of canonical messages.

This module provides:
- Output and dead-letter channel abstractions
- Kafka implementations of both channels
- ReliablePublisher, which turns every failed publish into an
  annotated dead-letter record

Publishing never blocks on broker acknowledgment and never retries;
retry behaviour belongs to the producer configuration.
"""

import functools
import logging
from concurrent.futures import CancelledError, Future
from typing import Optional, Protocol, Tuple, runtime_checkable

from confluent_kafka import KafkaError, KafkaException

from .models import DeadLetterRecord
from .producer import KafkaProducerClient
from ..core.logging import get_correlation_id
from ..monitoring.middleware import (
    record_publish_succeeded,
    record_publish_failed,
    record_dead_letter_sent,
    record_dead_letter_failed,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class OutputChannel(Protocol):
    """Destination for canonical messages."""

    topic: str

    def send(self, key: Optional[str], body: str) -> Future:
        """Start a publish and return a future resolving on acknowledgment."""
        ...


@runtime_checkable
class DeadLetterChannel(Protocol):
    """Destination for records whose publish failed."""

    def send(self, record: DeadLetterRecord) -> None:
        ...


def describe_error(exc: BaseException) -> Tuple[str, str]:
    """
    Classify a publish failure.

    Returns:
        (error class, error message). Broker failures report the
        KafkaError name and description; anything else reports the
        exception's qualified class name and its text.
    """
    kafka_error = exc.args[0] if exc.args and isinstance(exc.args[0], KafkaError) else None
    if kafka_error is not None:
        return kafka_error.name(), kafka_error.str() or ""

    cls = type(exc)
    if cls.__module__ == "builtins":
        error_class = cls.__qualname__
    else:
        error_class = f"{cls.__module__}.{cls.__qualname__}"
    return error_class, str(exc)


class KafkaOutputChannel:
    """Publishes canonical messages to the output topic."""

    def __init__(self, client: KafkaProducerClient, topic: str):
        self.client = client
        self.topic = topic

    def send(self, key: Optional[str], body: str) -> Future:
        future: Future = Future()

        def on_delivery(err, msg):
            if err is not None:
                future.set_exception(KafkaException(err))
            else:
                future.set_result(msg)

        try:
            self.client.produce(self.topic, body, key=key, on_delivery=on_delivery)
        except Exception as e:
            # Local rejections (queue full, unencodable key or value) fail the publish too
            future.set_exception(e)

        return future


class KafkaDeadLetterChannel:
    """Publishes dead-letter records with their failure headers."""

    def __init__(self, client: KafkaProducerClient, topic: str):
        self.client = client
        self.topic = topic

    def send(self, record: DeadLetterRecord) -> None:
        self.client.produce(
            self.topic,
            record.body,
            headers=record.headers(),
            on_delivery=functools.partial(self._on_delivery, record),
        )

    def _on_delivery(self, record: DeadLetterRecord, err, msg) -> None:
        if err is not None:
            logger.error(
                f"Dead-letter delivery to {self.topic} failed: {err} "
                f"(original error {record.error_class}: {record.error_message})"
            )
            record_dead_letter_failed(record.original_topic)
        else:
            logger.debug(f"Dead-letter record delivered to {self.topic}")


class ReliablePublisher:
    """
    Publishes canonical bodies and dead-letters the failures.

    The completion continuation runs on whichever thread resolves the
    publish future, usually the producer's delivery poller.
    """

    def __init__(
        self,
        output: OutputChannel,
        dead_letters: DeadLetterChannel,
        output_topic: Optional[str] = None,
    ):
        self.output = output
        self.dead_letters = dead_letters
        self.output_topic = output_topic or output.topic

    def publish(self, key: Optional[str], body: str) -> Future:
        """
        Start publishing ``body`` under ``key``.

        Returns:
            The output channel's future; the dead-letter continuation is
            already attached to it.
        """
        future = self.output.send(key, body)
        future.add_done_callback(
            functools.partial(self._on_complete, key, body, get_correlation_id())
        )
        return future

    def build_dead_letter(self, body: str, exc: BaseException) -> DeadLetterRecord:
        error_class, error_message = describe_error(exc)
        return DeadLetterRecord(
            body=body,
            error_class=error_class,
            error_message=error_message or "",
            original_topic=self.output_topic,
        )

    def _on_complete(
        self,
        key: Optional[str],
        body: str,
        corr_id: Optional[str],
        future: Future,
    ) -> None:
        log_extra = {"correlation_id": corr_id}

        if future.cancelled():
            exc: Optional[BaseException] = CancelledError("publish cancelled")
        else:
            exc = future.exception()

        if exc is None:
            logger.debug(f"Published key={key} to {self.output_topic}", extra=log_extra)
            record_publish_succeeded(self.output_topic)
            return

        record = self.build_dead_letter(body, exc)
        logger.warning(
            f"Publish of key={key} to {self.output_topic} failed, "
            f"routing to dead letters: {record.error_class}: {record.error_message}",
            extra=log_extra,
        )
        record_publish_failed(self.output_topic, record.error_class)

        try:
            self.dead_letters.send(record)
        except Exception as e:
            # Nothing further downstream; the failure is only observable here
            logger.error(f"Failed to hand off dead-letter record: {e}", extra=log_extra)
            record_dead_letter_failed(self.output_topic)
        else:
            record_dead_letter_sent(self.output_topic, record.error_class)

"""
Change event source: raw Debezium envelopes consumed from Kafka.

The connector (Debezium Server or Kafka Connect, ``schemas.enable=false``)
writes one envelope per row change to its topics. This module polls those
topics and feeds each message through a bounded queue to independent
worker tasks that invoke the envelope handler.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from confluent_kafka import Consumer, KafkaError, KafkaException, TopicPartition

from ..config import KafkaConfig, SourceConfig

logger = logging.getLogger(__name__)

EnvelopeHandler = Callable[[Any], None]


class ChangeEventSource:
    """
    Polls the connector topics and dispatches envelopes to a handler.

    Offsets are stored only once every earlier message of the same
    partition has been handled, and auto-commit commits stored offsets,
    so delivery is at-least-once: envelopes still queued or in flight at
    a crash are redelivered.
    """

    def __init__(
        self,
        kafka_config: KafkaConfig,
        source_config: SourceConfig,
        handler: EnvelopeHandler,
        consumer: Optional[Consumer] = None,
    ):
        self.kafka_config = kafka_config
        self.source_config = source_config
        self.handler = handler
        self.consumer = consumer

        self.running = False
        self.shutting_down = False
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=source_config.queue_size)
        self._workers: List[asyncio.Task] = []

        # Per (topic, partition): offsets queued but not yet handled, and
        # the highest handled offset
        self._in_flight: Dict[Tuple[str, int], Set[int]] = defaultdict(set)
        self._highest_done: Dict[Tuple[str, int], int] = {}

    async def run(self) -> None:
        """Consume until stop() is called."""
        if self.consumer is None:
            self.consumer = Consumer(
                self.source_config.consumer_settings(self.kafka_config.bootstrap_servers)
            )

        topics = self.source_config.topics
        logger.info(f"Subscribing to source topics: {topics}")
        self.consumer.subscribe(topics)

        self._workers = [
            asyncio.create_task(self._worker(i), name=f"cdc-relay-worker-{i}")
            for i in range(self.source_config.workers)
        ]
        self.running = True

        try:
            await self._poll_loop()
            # Let the workers finish what was already queued
            await self.queue.join()
        finally:
            await self._cleanup()

    def stop(self) -> None:
        """Ask the poll loop to exit after the current poll."""
        logger.info("Stopping change event source...")
        self.shutting_down = True

    async def _poll_loop(self) -> None:
        loop = asyncio.get_running_loop()
        timeout = self.source_config.poll_timeout_seconds

        while not self.shutting_down:
            message = await loop.run_in_executor(None, self.consumer.poll, timeout)
            if message is None:
                continue

            if message.error():
                if message.error().code() == KafkaError._PARTITION_EOF:
                    logger.debug(f"Reached end of partition {message.partition()}")
                else:
                    logger.error(f"Kafka error: {message.error()}")
                continue

            if message.value() is None and self.source_config.skip_tombstones:
                logger.debug(
                    f"Skipping tombstone {message.topic()}:{message.partition()}:{message.offset()}"
                )
                self._mark_done(message)
                continue

            self._in_flight[(message.topic(), message.partition())].add(message.offset())
            await self.queue.put(message)

    async def _worker(self, worker_id: int) -> None:
        while True:
            message = await self.queue.get()
            try:
                self.handler(message)
            except Exception as e:
                logger.error(f"Worker {worker_id} failed to handle envelope: {e}")
            finally:
                self._mark_done(message)
                self.queue.task_done()

    def _mark_done(self, message) -> None:
        """Record a handled message and store the next safe offset to commit."""
        partition = (message.topic(), message.partition())
        in_flight = self._in_flight[partition]
        in_flight.discard(message.offset())
        self._highest_done[partition] = max(message.offset(), self._highest_done.get(partition, -1))

        next_offset = min(in_flight) if in_flight else self._highest_done[partition] + 1
        try:
            self.consumer.store_offsets(offsets=[TopicPartition(partition[0], partition[1], next_offset)])
        except KafkaException as e:
            # Partition revoked since the poll; the new owner redelivers it
            logger.warning(f"Could not store offset {partition[0]}:{partition[1]}:{next_offset}: {e}")

    async def _cleanup(self) -> None:
        logger.info("Cleaning up source resources...")

        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

        if self.consumer:
            self.consumer.close()
            self.consumer = None

        self.running = False
        logger.info("Source cleanup completed")

"""
Relay package for the CDC relay.

This package provides:
- Normalization of raw Debezium envelopes into canonical messages
- Non-blocking publishing with dead-letter routing of failures
- A Kafka-backed change event source with a bounded work queue
- The relay service tying them together
"""

from .models import (
    OperationType,
    CanonicalMessage,
    NormalizedEvent,
    DeadLetterRecord,
)

from .normalizer import (
    EventNormalizer,
    normalize_change_event,
)

from .producer import KafkaProducerClient

from .publisher import (
    OutputChannel,
    DeadLetterChannel,
    KafkaOutputChannel,
    KafkaDeadLetterChannel,
    ReliablePublisher,
    describe_error,
)

from .source import ChangeEventSource

from .service import (
    RelayMetrics,
    CDCRelayService,
    create_relay_service,
    run_relay_service,
)

__all__ = [
    # Data types
    "OperationType",
    "CanonicalMessage",
    "NormalizedEvent",
    "DeadLetterRecord",

    # Normalization
    "EventNormalizer",
    "normalize_change_event",

    # Publishing
    "KafkaProducerClient",
    "OutputChannel",
    "DeadLetterChannel",
    "KafkaOutputChannel",
    "KafkaDeadLetterChannel",
    "ReliablePublisher",
    "describe_error",

    # Source and service
    "ChangeEventSource",
    "RelayMetrics",
    "CDCRelayService",
    "create_relay_service",
    "run_relay_service",
]

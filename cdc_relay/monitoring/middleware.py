"""
Metric recording helpers used by the relay components.

Each helper forwards to the global monitoring service and does nothing
when monitoring is not running, so relay code can record metrics
unconditionally.
"""

from .service import get_monitoring_service


def record_envelope_received(topic: str) -> None:
    """Record a raw envelope taken from the source."""
    monitoring = get_monitoring_service()
    if monitoring:
        monitoring.record_envelope_received(topic)


def record_event_normalized(operation_type: str) -> None:
    """Record a normalized event."""
    monitoring = get_monitoring_service()
    if monitoring:
        monitoring.record_event_normalized(operation_type)


def record_decode_fallback() -> None:
    monitoring = get_monitoring_service()
    if monitoring:
        monitoring.record_decode_fallback()


def record_serialization_fallback() -> None:
    monitoring = get_monitoring_service()
    if monitoring:
        monitoring.record_serialization_fallback()


def record_handler_error(error_type: str) -> None:
    monitoring = get_monitoring_service()
    if monitoring:
        monitoring.record_handler_error(error_type)


def record_publish_succeeded(topic: str) -> None:
    """Record a publish acknowledged by the broker."""
    monitoring = get_monitoring_service()
    if monitoring:
        monitoring.record_publish_succeeded(topic)


def record_publish_failed(topic: str, error_class: str) -> None:
    """Record a failed publish."""
    monitoring = get_monitoring_service()
    if monitoring:
        monitoring.record_publish_failed(topic, error_class)


def record_dead_letter_sent(original_topic: str, error_class: str) -> None:
    monitoring = get_monitoring_service()
    if monitoring:
        monitoring.record_dead_letter_sent(original_topic, error_class)


def record_dead_letter_failed(original_topic: str) -> None:
    monitoring = get_monitoring_service()
    if monitoring:
        monitoring.record_dead_letter_failed(original_topic)

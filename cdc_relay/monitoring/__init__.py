"""
Monitoring package for the CDC relay.

This package provides:
- Health check endpoints
- Prometheus metrics collection and exposure
- System resource tracking
- Metric recording helpers for the relay pipeline
"""

from .service import (
    HealthStatus,
    MetricsCollector,
    HealthChecker,
    MonitoringService,
    get_monitoring_service,
    set_monitoring_service,
    create_monitoring_service,
)

from .middleware import (
    record_envelope_received,
    record_event_normalized,
    record_decode_fallback,
    record_serialization_fallback,
    record_handler_error,
    record_publish_succeeded,
    record_publish_failed,
    record_dead_letter_sent,
    record_dead_letter_failed,
)

__all__ = [
    # Service classes
    "HealthStatus",
    "MetricsCollector",
    "HealthChecker",
    "MonitoringService",

    # Service functions
    "get_monitoring_service",
    "set_monitoring_service",
    "create_monitoring_service",

    # Manual metrics recording
    "record_envelope_received",
    "record_event_normalized",
    "record_decode_fallback",
    "record_serialization_fallback",
    "record_handler_error",
    "record_publish_succeeded",
    "record_publish_failed",
    "record_dead_letter_sent",
    "record_dead_letter_failed",
]

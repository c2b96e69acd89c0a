"""
Monitoring service for the CDC relay.

This module provides:
- Health check endpoints
- Prometheus metrics collection and exposure
- System resource monitoring
"""

import asyncio
import time
import platform
import logging
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional, Callable, Awaitable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

import psutil
from aiohttp import web
from prometheus_client import (
    Counter, Gauge, CollectorRegistry,
    generate_latest, CONTENT_TYPE_LATEST
)

from ..config import MonitoringConfig

logger = logging.getLogger(__name__)

HealthCheck = Callable[[], Awaitable[Dict[str, Any]]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class HealthStatus:
    """Health check status container."""
    status: str  # "healthy", "unhealthy"
    timestamp: datetime = field(default_factory=_utcnow)
    checks: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "status": self.status,
            "timestamp": self.timestamp.isoformat(),
            "checks": self.checks,
            "message": self.message,
        }


class MetricsCollector:
    """Prometheus metrics collector."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        # Normalization metrics
        self.envelopes_received = Counter(
            'cdc_relay_envelopes_received_total',
            'Raw change envelopes received from the source',
            ['topic'],
            registry=self.registry
        )

        self.events_normalized = Counter(
            'cdc_relay_events_normalized_total',
            'Envelopes normalized, by operation type',
            ['operation_type'],
            registry=self.registry
        )

        self.decode_fallbacks = Counter(
            'cdc_relay_decode_fallbacks_total',
            'Envelopes that could not be decoded and were emitted as UNKNOWN',
            registry=self.registry
        )

        self.serialization_fallbacks = Counter(
            'cdc_relay_serialization_fallbacks_total',
            'Canonical messages that fell back to the raw body',
            registry=self.registry
        )

        self.handler_errors = Counter(
            'cdc_relay_handler_errors_total',
            'Unexpected errors raised while handling an envelope',
            ['error_type'],
            registry=self.registry
        )

        # Publish metrics
        self.publish_succeeded = Counter(
            'cdc_relay_publish_succeeded_total',
            'Publishes acknowledged by the broker',
            ['topic'],
            registry=self.registry
        )

        self.publish_failed = Counter(
            'cdc_relay_publish_failed_total',
            'Publishes rejected by the broker or the local producer',
            ['topic', 'error_class'],
            registry=self.registry
        )

        self.dead_letters_sent = Counter(
            'cdc_relay_dead_letters_sent_total',
            'Dead-letter records handed to the dead-letter topic',
            ['original_topic', 'error_class'],
            registry=self.registry
        )

        self.dead_letters_failed = Counter(
            'cdc_relay_dead_letters_failed_total',
            'Dead-letter records that could not be delivered',
            ['original_topic'],
            registry=self.registry
        )

        # System metrics
        self.system_cpu_usage = Gauge(
            'cdc_relay_system_cpu_usage_percent',
            'System CPU usage percentage',
            registry=self.registry
        )

        self.system_memory_usage = Gauge(
            'cdc_relay_system_memory_usage_bytes',
            'System memory usage in bytes',
            registry=self.registry
        )

        self.app_uptime = Gauge(
            'cdc_relay_app_uptime_seconds',
            'Application uptime in seconds',
            registry=self.registry
        )

        self.app_start_time = time.time()

    def collect_system_metrics(self) -> None:
        """Collect current system metrics."""
        self.system_cpu_usage.set(psutil.cpu_percent(interval=None))
        self.system_memory_usage.set(psutil.virtual_memory().used)
        self.app_uptime.set(time.time() - self.app_start_time)

    def get_metrics_text(self) -> str:
        """Get metrics in Prometheus text format."""
        return generate_latest(self.registry).decode('utf-8')


class HealthChecker:
    """Health check manager."""

    def __init__(self):
        self.checks: List[HealthCheck] = []

    def add_check(self, check_func: HealthCheck) -> None:
        """Add a health check coroutine function."""
        self.checks.append(check_func)

    async def run_health_checks(self) -> HealthStatus:
        """Run all health checks."""
        checks_results = {}
        overall_status = "healthy"

        for check_func in self.checks:
            check_name = getattr(check_func, '__name__', 'unknown_check')
            try:
                result = await check_func()
            except Exception as e:
                logger.error(f"Health check {check_name} raised: {e}")
                result = {"status": "unhealthy", "error": str(e)}

            checks_results[check_name] = result
            if result.get("status") != "healthy":
                overall_status = "unhealthy"

        checks_results["system"] = {
            "status": "healthy",
            "platform": platform.platform(),
            "python_version": platform.python_version(),
            "cpu_count": psutil.cpu_count(),
            "memory_total": psutil.virtual_memory().total,
        }

        return HealthStatus(status=overall_status, checks=checks_results)


class MonitoringService:
    """Main monitoring service."""

    def __init__(
        self,
        config: MonitoringConfig,
        metrics_collector: Optional[MetricsCollector] = None
    ):
        self.config = config
        self.metrics = metrics_collector or MetricsCollector()
        self.health_checker = HealthChecker()

        self.app: Optional[web.Application] = None
        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None

        self._monitoring_task: Optional[asyncio.Task] = None

    def create_app(self) -> web.Application:
        """Build the aiohttp application with the monitoring routes."""
        app = web.Application()
        app.router.add_get('/health', self.health_check_handler)
        app.router.add_get('/ready', self.readiness_handler)
        app.router.add_get(self.config.prometheus_path, self.metrics_handler)
        return app

    async def start(self) -> None:
        """Start the monitoring service."""
        if not self.config.enabled:
            logger.info("Monitoring disabled in configuration")
            return

        logger.info("Starting monitoring service...")

        self.app = self.create_app()
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()

        self.site = web.TCPSite(
            self.runner,
            '0.0.0.0',
            self.config.health_check_port
        )
        await self.site.start()

        logger.info(f"Health check server started on port {self.config.health_check_port}")

        if self.config.collect_system_metrics:
            self._monitoring_task = asyncio.create_task(self._background_monitoring())

    async def stop(self) -> None:
        """Stop the monitoring service."""
        logger.info("Stopping monitoring service...")

        if self._monitoring_task:
            self._monitoring_task.cancel()
            try:
                await self._monitoring_task
            except asyncio.CancelledError:
                pass
            self._monitoring_task = None

        if self.site:
            await self.site.stop()

        if self.runner:
            await self.runner.cleanup()

        logger.info("Monitoring service stopped")

    async def health_check_handler(self, request: web.Request) -> web.Response:
        """Health check endpoint handler."""
        health_status = await self.health_checker.run_health_checks()
        status_code = 200 if health_status.status == "healthy" else 503
        return web.json_response(health_status.to_dict(), status=status_code)

    async def readiness_handler(self, request: web.Request) -> web.Response:
        """Readiness check endpoint handler."""
        return await self.health_check_handler(request)

    async def metrics_handler(self, request: web.Request) -> web.Response:
        """Metrics endpoint handler."""
        if not self.config.prometheus_enabled:
            return web.Response(status=404, text="Metrics not enabled")

        if self.config.collect_system_metrics:
            self.metrics.collect_system_metrics()

        return web.Response(
            body=self.metrics.get_metrics_text().encode('utf-8'),
            headers={"Content-Type": CONTENT_TYPE_LATEST},
        )

    async def _background_monitoring(self) -> None:
        """Background monitoring task."""
        while True:
            try:
                self.metrics.collect_system_metrics()
                await asyncio.sleep(60)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Background monitoring error: {e}")
                await asyncio.sleep(60)

    def record_envelope_received(self, topic: str) -> None:
        if self.config.collect_relay_metrics:
            self.metrics.envelopes_received.labels(topic=topic).inc()

    def record_event_normalized(self, operation_type: str) -> None:
        if self.config.collect_relay_metrics:
            self.metrics.events_normalized.labels(operation_type=operation_type).inc()

    def record_decode_fallback(self) -> None:
        if self.config.collect_relay_metrics:
            self.metrics.decode_fallbacks.inc()

    def record_serialization_fallback(self) -> None:
        if self.config.collect_relay_metrics:
            self.metrics.serialization_fallbacks.inc()

    def record_handler_error(self, error_type: str) -> None:
        if self.config.collect_relay_metrics:
            self.metrics.handler_errors.labels(error_type=error_type).inc()

    def record_publish_succeeded(self, topic: str) -> None:
        if self.config.collect_relay_metrics:
            self.metrics.publish_succeeded.labels(topic=topic).inc()

    def record_publish_failed(self, topic: str, error_class: str) -> None:
        if self.config.collect_relay_metrics:
            self.metrics.publish_failed.labels(topic=topic, error_class=error_class).inc()

    def record_dead_letter_sent(self, original_topic: str, error_class: str) -> None:
        if self.config.collect_relay_metrics:
            self.metrics.dead_letters_sent.labels(
                original_topic=original_topic, error_class=error_class
            ).inc()

    def record_dead_letter_failed(self, original_topic: str) -> None:
        if self.config.collect_relay_metrics:
            self.metrics.dead_letters_failed.labels(original_topic=original_topic).inc()


# Global monitoring service instance
_monitoring_service: Optional[MonitoringService] = None


def get_monitoring_service() -> Optional[MonitoringService]:
    """Get the global monitoring service instance."""
    return _monitoring_service


def set_monitoring_service(service: Optional[MonitoringService]) -> None:
    """Set the global monitoring service instance."""
    global _monitoring_service
    _monitoring_service = service


@asynccontextmanager
async def create_monitoring_service(config: MonitoringConfig):
    """
    Context manager for monitoring service lifecycle.

    Usage:
        async with create_monitoring_service(config) as monitoring:
            monitoring.health_checker.add_check(relay.health_check)
    """
    service = MonitoringService(config)
    set_monitoring_service(service)

    try:
        await service.start()
        yield service
    finally:
        await service.stop()
        set_monitoring_service(None)

"""
Shared metrics configuration for the backing services layer.
"""

from typing import Dict, Any, Optional
import threading

from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry

from shared.logging import get_logger


class MetricsCollector:
    """Centralized metrics collector for the cache and gate components."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        # A private registry per collector keeps independent instances from
        # colliding on metric names.
        self.registry = registry if registry is not None else CollectorRegistry()
        self.logger = get_logger("metrics")
        self._metrics: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up metrics for the service."""

        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        self._setup_cache_metrics()
        self._setup_gate_metrics()
        self._setup_batch_metrics()

    def _setup_cache_metrics(self):
        self._metrics["cache_operations_total"] = Counter(
            "cache_operations_total",
            "Total cache operations",
            ["operation", "backend", "result"],
            registry=self.registry
        )

        self._metrics["cache_backend_active"] = Gauge(
            "cache_backend_active",
            "1 for the cache backend currently serving requests",
            ["backend"],
            registry=self.registry
        )

    def _setup_gate_metrics(self):
        self._metrics["gate_in_flight"] = Gauge(
            "gate_in_flight",
            "Tasks currently holding a gate slot",
            ["gate"],
            registry=self.registry
        )

        self._metrics["gate_waiting"] = Gauge(
            "gate_waiting",
            "Tasks queued for a gate slot",
            ["gate"],
            registry=self.registry
        )

        self._metrics["gate_admissions_total"] = Counter(
            "gate_admissions_total",
            "Total gate admissions",
            ["gate", "queued"],
            registry=self.registry
        )

        self._metrics["gate_wait_seconds"] = Histogram(
            "gate_wait_seconds",
            "Time spent waiting for a gate slot",
            ["gate"],
            registry=self.registry
        )

    def _setup_batch_metrics(self):
        self._metrics["batch_chunks_total"] = Counter(
            "batch_chunks_total",
            "Total batch chunks processed",
            ["result"],
            registry=self.registry
        )

    def get_sample_value(self, name: str, **labels) -> Optional[float]:
        """Read back a recorded sample, mainly for tests and stats."""
        return self.registry.get_sample_value(name, labels)

    def record_cache_operation(self, operation: str, backend: str, result: str):
        """Record a cache operation outcome."""
        self.increment_counter("cache_operations_total", operation=operation, backend=backend, result=result)

    def set_active_backend(self, backend: str):
        """Flag which cache backend is serving requests."""
        for name in ("local", "remote"):
            self.set_gauge("cache_backend_active", 1.0 if name == backend else 0.0, backend=name)

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        metric = self._metrics.get(metric_name)
        if metric is None:
            return
        try:
            with self._lock:
                metric.labels(**labels).inc()
        except Exception as exc:  # pragma: no cover - metrics must never break callers
            self.logger.debug("Failed to record counter", metric=metric_name, error=str(exc))

    def set_gauge(self, metric_name: str, value: float, **labels):
        """Set a gauge metric value."""
        metric = self._metrics.get(metric_name)
        if metric is None:
            return
        try:
            with self._lock:
                metric.labels(**labels).set(value)
        except Exception as exc:  # pragma: no cover
            self.logger.debug("Failed to set gauge", metric=metric_name, error=str(exc))

    def observe_histogram(self, metric_name: str, value: float, **labels):
        """Observe a histogram metric."""
        metric = self._metrics.get(metric_name)
        if metric is None:
            return
        try:
            with self._lock:
                metric.labels(**labels).observe(value)
        except Exception as exc:  # pragma: no cover
            self.logger.debug("Failed to observe histogram", metric=metric_name, error=str(exc))


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)

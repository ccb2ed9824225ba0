"""
Shared metrics configuration for the Recipe Access Layer.
"""

from typing import Dict, Any, Optional

from prometheus_client import Counter, Histogram, Info, CollectorRegistry


class MetricsCollector:
    """Centralized metrics collector for the client layer.

    Each collector owns its own registry unless one is passed in, so several
    clients can coexist in one process (and in one test session).
    """

    def __init__(self, component_name: str, registry: Optional[CollectorRegistry] = None):
        self.component_name = component_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up client metrics."""
        self._metrics["client_info"] = Info(
            "client_info",
            "Client information",
            registry=self.registry
        )
        self._metrics["client_info"].info({
            "component": self.component_name,
            "version": "1.0.0"
        })

        # Request gateway
        self._metrics["client_requests_total"] = Counter(
            "client_requests_total",
            "Total outbound API requests",
            ["method", "status_code"],
            registry=self.registry
        )

        self._metrics["client_request_duration_seconds"] = Histogram(
            "client_request_duration_seconds",
            "Outbound API request duration in seconds",
            ["method"],
            registry=self.registry
        )

        self._metrics["credential_resolutions_total"] = Counter(
            "credential_resolutions_total",
            "Credential resolutions by outcome",
            ["result"],
            registry=self.registry
        )

        # Cache store
        self._metrics["cache_lookups_total"] = Counter(
            "cache_lookups_total",
            "Cache populate calls by outcome",
            ["result"],
            registry=self.registry
        )

        self._metrics["cache_invalidations_total"] = Counter(
            "cache_invalidations_total",
            "Cache entries marked stale",
            ["resource_kind"],
            registry=self.registry
        )

        # Mutations
        self._metrics["mutations_total"] = Counter(
            "mutations_total",
            "Mutations by kind and outcome",
            ["kind", "result"],
            registry=self.registry
        )

    def get_sample(self, name: str, **labels) -> float:
        """Read the current value of a sample, 0.0 when it was never recorded."""
        value = self.registry.get_sample_value(name, labels)
        return value if value is not None else 0.0

    def record_http_request(self, method: str, status_code: Any, duration: float):
        """Record outbound request metrics."""
        self._metrics["client_requests_total"].labels(
            method=method,
            status_code=str(status_code)
        ).inc()

        self._metrics["client_request_duration_seconds"].labels(
            method=method
        ).observe(duration)

    def increment_counter(self, metric_name: str, amount: float = 1, **labels):
        """Increment a counter metric."""
        if metric_name in self._metrics:
            self._metrics[metric_name].labels(**labels).inc(amount)


def get_metrics_collector(component_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a component."""
    return MetricsCollector(component_name, registry)

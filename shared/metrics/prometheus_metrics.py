"""Prometheus metrics definitions and helpers.

Provides common metric definitions for the login server.
"""

from functools import lru_cache
from typing import Callable

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    REGISTRY,
    CollectorRegistry,
)


class HTTPMetrics:
    """HTTP request metrics."""

    def __init__(self, registry: CollectorRegistry = REGISTRY) -> None:
        """Initialize HTTP metrics.

        Args:
            registry: Prometheus registry to use
        """
        self.requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status"],
            registry=registry,
        )

        self.request_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=registry,
        )

        self.requests_in_progress = Gauge(
            "http_requests_in_progress",
            "HTTP requests currently in progress",
            ["method", "endpoint"],
            registry=registry,
        )

        self.database_pool_size = Gauge(
            "database_pool_size",
            "Connections currently held by the database pool",
            registry=registry,
        )

        self.database_pool_idle = Gauge(
            "database_pool_idle",
            "Idle connections in the database pool",
            registry=registry,
        )


class AuthMetrics:
    """Authentication outcome metrics."""

    def __init__(self, registry: CollectorRegistry = REGISTRY) -> None:
        """Initialize auth metrics.

        Args:
            registry: Prometheus registry to use
        """
        # operation: register|login|session|logout, outcome: the response status
        self.operations = Counter(
            "auth_operations_total",
            "Authentication operations by outcome",
            ["operation", "outcome"],
            registry=registry,
        )

        self.password_hash_duration = Histogram(
            "auth_password_hash_duration_seconds",
            "Time spent hashing or verifying passwords",
            ["operation"],
            buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
            registry=registry,
        )

    def record(self, operation: str, outcome: int) -> None:
        """Count one completed operation."""
        self.operations.labels(operation=operation, outcome=str(outcome)).inc()


@lru_cache()
def setup_metrics() -> tuple[HTTPMetrics, AuthMetrics]:
    """Setup and return metric instances registered on the default registry.

    Cached so that repeated application construction (tests, reloads) does not
    register the same collectors twice.

    Returns:
        Tuple of (HTTPMetrics, AuthMetrics)
    """
    return HTTPMetrics(), AuthMetrics()


def get_metrics_handler() -> Callable[[], bytes]:
    """Get metrics handler for HTTP endpoint.

    Returns:
        Function that generates Prometheus metrics output
    """

    def metrics_handler() -> bytes:
        return generate_latest(REGISTRY)

    return metrics_handler

"""
Client Metrics Collection

Prometheus metrics for outgoing requests, retries and operation polling.

Author: AzureKit Team
Date: 2026-01-20
"""

from typing import Optional

from prometheus_client import (
    Counter,
    Histogram,
    CollectorRegistry,
    REGISTRY,
    generate_latest,
)


class ClientMetrics:
    """
    Prometheus metrics collector for AzureKit clients.

    Tracks requests sent, retries, and asynchronous operation polling.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """
        Initialize metrics collectors.

        Args:
            registry: Prometheus registry (uses default if None)
        """
        self.registry = registry if registry is not None else REGISTRY

        self.requests_total = Counter(
            'azurekit_requests_total',
            'Total HTTP requests sent',
            ['method', 'status_code'],
            registry=self.registry
        )

        self.request_errors_total = Counter(
            'azurekit_request_errors_total',
            'Total requests that failed without an HTTP response',
            ['method', 'error_type'],
            registry=self.registry
        )

        self.retries_total = Counter(
            'azurekit_retries_total',
            'Total request retries',
            ['reason'],
            registry=self.registry
        )

        self.request_duration_seconds = Histogram(
            'azurekit_request_duration_seconds',
            'HTTP request duration',
            ['method'],
            registry=self.registry
        )

        self.polls_total = Counter(
            'azurekit_polls_total',
            'Total status polls of asynchronous operations',
            registry=self.registry
        )

        self.polling_outcomes_total = Counter(
            'azurekit_polling_outcomes_total',
            'Polling loops by final outcome',
            ['outcome'],
            registry=self.registry
        )

    def track_request(self, method: str, status_code: int, duration: float) -> None:
        """
        Track a request that received an HTTP response.

        Args:
            method: HTTP method
            status_code: Response status
            duration: Round-trip time in seconds
        """
        self.requests_total.labels(method=method, status_code=str(status_code)).inc()
        self.request_duration_seconds.labels(method=method).observe(duration)

    def track_request_error(self, method: str, error: BaseException) -> None:
        """Track a request that failed at the network level."""
        self.request_errors_total.labels(
            method=method, error_type=type(error).__name__
        ).inc()

    def track_retry(self, reason: str) -> None:
        """Track a retry, with reason being a status code or error type."""
        self.retries_total.labels(reason=reason).inc()

    def track_poll(self) -> None:
        """Track one status poll."""
        self.polls_total.inc()

    def track_polling_outcome(self, outcome: str) -> None:
        """Track how a polling loop ended: done, failed or timed_out."""
        self.polling_outcomes_total.labels(outcome=outcome).inc()

    def unregister(self) -> None:
        """Remove this instance's collectors from its registry."""
        for collector in (
            self.requests_total,
            self.request_errors_total,
            self.retries_total,
            self.request_duration_seconds,
            self.polls_total,
            self.polling_outcomes_total,
        ):
            self.registry.unregister(collector)

    def generate_metrics(self) -> bytes:
        """
        Generate Prometheus metrics output.

        Returns:
            Metrics in Prometheus text format
        """
        return generate_latest(self.registry)


_metrics: Optional[ClientMetrics] = None


def get_metrics() -> ClientMetrics:
    """
    Get global metrics instance (singleton).

    Returns:
        ClientMetrics instance
    """
    global _metrics
    if _metrics is None:
        _metrics = ClientMetrics()
    return _metrics


def reset_metrics() -> None:
    """Reset global metrics instance (for testing)."""
    global _metrics
    if _metrics is not None:
        _metrics.unregister()
    _metrics = None

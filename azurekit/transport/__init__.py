"""
AzureKit transport layer.

HTTP request/response types, the pluggable transport, retry policies,
error kinds and client metrics.
"""

from azurekit.transport.errors import (
    HTTPError,
    TransportError,
    ProviderError,
    PollingTimeoutError,
    new_http_error,
    extend_error,
    is_not_found_error,
)
from azurekit.transport.http import (
    HTTPMethod,
    HTTPRequest,
    HTTPResponse,
    Transport,
    RequestsTransport,
)
from azurekit.transport.retry_policy import (
    BackoffShape,
    RetryPolicy,
    Retrier,
    NO_RETRY_POLICY,
)
from azurekit.transport.metrics import ClientMetrics, get_metrics, reset_metrics

__all__ = [
    # Errors
    "HTTPError",
    "TransportError",
    "ProviderError",
    "PollingTimeoutError",
    "new_http_error",
    "extend_error",
    "is_not_found_error",
    # HTTP
    "HTTPMethod",
    "HTTPRequest",
    "HTTPResponse",
    "Transport",
    "RequestsTransport",
    # Retries
    "BackoffShape",
    "RetryPolicy",
    "Retrier",
    "NO_RETRY_POLICY",
    # Metrics
    "ClientMetrics",
    "get_metrics",
    "reset_metrics",
]

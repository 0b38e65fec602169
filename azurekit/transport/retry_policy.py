"""
Retry policy for outgoing requests.

A RetryPolicy says which responses and errors are transient, how many
times a request may be retried, how long to wait between attempts and how
long the whole exchange may take. A Retrier enforces one policy for one
logical request.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Tuple

import requests

from azurekit.transport.http import HTTPRequest, HTTPResponse, Transport
from azurekit.transport.metrics import ClientMetrics, get_metrics

logger = logging.getLogger(__name__)


# Network-level failures that may go away on their own.
CONNECTION_ERRORS: Tuple[type, ...] = (
    requests.ConnectionError,
    requests.Timeout,
    ConnectionError,
    TimeoutError,
)


class BackoffShape(str, Enum):
    """How the delay between retries evolves."""

    FIXED = "fixed"
    EXPONENTIAL = "exponential"


@dataclass(frozen=True)
class RetryPolicy:
    """
    How requests are retried when the server returns a transient failure.

    Attributes:
        nb_retries: Retries allowed after the initial attempt; 3 means up
            to 4 requests in total
        http_status_codes: Response statuses that trigger a retry
        delay: Wait before the first retry, in seconds
        backoff: FIXED waits ``delay`` every time; EXPONENTIAL doubles it
            on each retry up to ``max_delay``
        max_delay: Upper bound on a single wait, in seconds
        deadline: Optional bound on the time spent across all attempts;
            no retry starts once it has elapsed
        retry_on_connection_errors: Also retry network-level failures
    """

    nb_retries: int = 0
    http_status_codes: Tuple[int, ...] = ()
    delay: float = 0.0
    backoff: BackoffShape = BackoffShape.FIXED
    max_delay: float = 30.0
    deadline: Optional[float] = None
    retry_on_connection_errors: bool = False

    def __post_init__(self):
        """Validate configuration."""
        if self.nb_retries < 0:
            raise ValueError("nb_retries must be non-negative")
        if self.delay < 0:
            raise ValueError("delay must be non-negative")
        if self.deadline is not None and self.deadline <= 0:
            raise ValueError("deadline must be positive")
        # Accept any iterable of codes, store an immutable tuple.
        object.__setattr__(self, "http_status_codes", tuple(self.http_status_codes))

    def is_retry_code(self, status_code: int) -> bool:
        """Whether a response status should be retried under this policy."""
        return status_code in self.http_status_codes

    def is_retry_error(self, error: BaseException) -> bool:
        """Whether a network-level error should be retried under this policy."""
        return self.retry_on_connection_errors and isinstance(error, CONNECTION_ERRORS)

    def compute_delay(self, retry_number: int) -> float:
        """
        Delay before the given retry (1 for the first retry).

        Args:
            retry_number: 1-based retry index

        Returns:
            Delay in seconds
        """
        if self.backoff == BackoffShape.EXPONENTIAL:
            return min(self.delay * (2 ** (retry_number - 1)), self.max_delay)
        return self.delay

    def get_retrier(
        self,
        transport: Transport,
        metrics: Optional[ClientMetrics] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> "Retrier":
        """Return a Retrier enforcing this policy for one logical request."""
        return Retrier(self, transport, metrics=metrics, sleep=sleep, clock=clock)


NO_RETRY_POLICY = RetryPolicy(nb_retries=0)


class Retrier:
    """
    Repeats a request as governed by a retry policy.

    The request is rebuilt for every attempt by calling the ``build``
    function given to ``retry_request``, so that time-dependent headers and
    signatures are fresh on each attempt.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        transport: Transport,
        metrics: Optional[ClientMetrics] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.policy = policy
        self.transport = transport
        self.metrics = metrics or get_metrics()
        self.retries_left = policy.nb_retries
        self._sleep = sleep
        self._clock = clock
        self._started: Optional[float] = None

    def _within_deadline(self) -> bool:
        if self.policy.deadline is None or self._started is None:
            return True
        return self._clock() - self._started < self.policy.deadline

    def _consume_retry(self, retryable: bool) -> bool:
        """Use up one retry if the failure is retryable and budget remains."""
        if retryable and self.retries_left > 0 and self._within_deadline():
            self.retries_left -= 1
            return True
        return False

    def should_retry(self, status_code: int) -> bool:
        """Whether a response with this status should be retried."""
        return self._consume_retry(self.policy.is_retry_code(status_code))

    def _wait(self, reason: str) -> None:
        retry_number = self.policy.nb_retries - self.retries_left
        delay = self.policy.compute_delay(retry_number)
        logger.warning(
            f"Request failed ({reason}), retrying in {delay:.2f}s "
            f"(retry {retry_number}/{self.policy.nb_retries})"
        )
        self.metrics.track_retry(reason)
        if delay > 0:
            self._sleep(delay)

    def retry_request(self, build: Callable[[], HTTPRequest]) -> HTTPResponse:
        """
        Send a request, retrying it as the policy allows.

        Args:
            build: Returns the request to send; called once per attempt

        Returns:
            The first response that is not retried

        Raises:
            requests.RequestException: If a network error is not retried or
                retries are exhausted
        """
        self._started = self._clock()
        while True:
            request = build()
            method = request.method.value
            sent_at = self._clock()
            try:
                response = self.transport.send(request)
            except Exception as exc:
                self.metrics.track_request_error(method, exc)
                if not self._consume_retry(self.policy.is_retry_error(exc)):
                    raise
                self._wait(type(exc).__name__)
                continue

            self.metrics.track_request(method, response.status_code, self._clock() - sent_at)
            if not self.should_retry(response.status_code):
                return response
            self._wait(str(response.status_code))

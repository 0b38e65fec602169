"""
Polling of asynchronous server operations.

A Poller pairs a side-effect-free status check with a predicate deciding
whether the latest result means the work is finished. ``perform_polling``
drives one poller to completion on the calling thread.
"""

import logging
import time
from abc import ABC, abstractmethod
from http import HTTPStatus
from typing import TYPE_CHECKING, Callable, Optional

from azurekit.management.operations import Operation
from azurekit.transport.errors import PollingTimeoutError
from azurekit.transport.http import HTTPMethod, HTTPResponse
from azurekit.transport.metrics import ClientMetrics, get_metrics

if TYPE_CHECKING:
    from azurekit.management.session import ManagementSession

logger = logging.getLogger(__name__)

OPERATIONS_API_VERSION = "2009-10-01"


class Poller(ABC):
    """Queries a server and decides when its answer means polling is over."""

    @abstractmethod
    def poll(self) -> Optional[HTTPResponse]:
        """Issue one status check."""

    @abstractmethod
    def is_done(self, response: Optional[HTTPResponse], error: Optional[Exception]) -> bool:
        """
        Decide whether polling is finished.

        Args:
            response: Result of the last ``poll()``, None if it raised
            error: Exception raised by the last ``poll()``, if any

        Returns:
            True when finished, False to poll again

        Raises:
            Exception: To stop polling with an error
        """


def perform_polling(
    poller: Poller,
    interval: float,
    timeout: float,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
    metrics: Optional[ClientMetrics] = None,
) -> Optional[HTTPResponse]:
    """
    Poll until ``poller.is_done()`` reports completion.

    The first poll happens immediately; later ones are spaced by
    ``interval`` seconds. An exception raised by ``poll()`` is handed to
    ``is_done()`` once, which may ask for another poll; if it reports
    completion instead, the error is raised to the caller.

    Args:
        poller: The poller to drive
        interval: Seconds between polls
        timeout: Seconds after which polling gives up
        sleep: Used to wait between polls
        clock: Monotonic time source
        metrics: Metrics collector (global instance by default)

    Returns:
        The response of the last poll

    Raises:
        PollingTimeoutError: If the timeout elapses first
    """
    metrics = metrics or get_metrics()
    started = clock()
    attempts = 0

    while True:
        if attempts > 0:
            sleep(interval)
            if clock() - started >= timeout:
                logger.warning(f"Polling timed out after {attempts} attempts")
                metrics.track_polling_outcome("timed_out")
                raise PollingTimeoutError()

        attempts += 1
        metrics.track_poll()
        response: Optional[HTTPResponse] = None
        error: Optional[Exception] = None
        try:
            response = poller.poll()
        except Exception as exc:
            error = exc

        try:
            done = poller.is_done(response, error)
        except Exception:
            metrics.track_polling_outcome("failed")
            raise

        if done:
            if error is not None:
                logger.warning(f"Polling stopped on error after {attempts} attempts: {error}")
                metrics.track_polling_outcome("failed")
                raise error
            logger.debug(f"Polling finished after {attempts} attempts")
            metrics.track_polling_outcome("done")
            return response


def perform_operation_polling(poller: Poller, interval: float, timeout: float, **kwargs) -> Operation:
    """Run ``perform_polling`` and decode the final response as an Operation."""
    response = perform_polling(poller, interval, timeout, **kwargs)
    return Operation.deserialize(response.body)


class OperationPoller(Poller):
    """
    Polls the status of the asynchronous operation with the given ID.

    Reference: http://msdn.microsoft.com/en-us/library/windowsazure/ee460783.aspx
    """

    def __init__(self, session: "ManagementSession", operation_id: str):
        self.session = session
        self.operation_id = operation_id

    def poll(self) -> HTTPResponse:
        # Raw send: a failed status check is not a failed operation.
        return self.session.send(
            HTTPMethod.GET, "operations/" + self.operation_id, OPERATIONS_API_VERSION
        )

    def is_done(self, response: Optional[HTTPResponse], error: Optional[Exception]) -> bool:
        """
        Decode one status response.

        Raises:
            Exception: The poll error, if any
            OperationDecodeError: If a successful response holds no Operation
        """
        if error is not None:
            raise error
        if not HTTPStatus.OK <= response.status_code < HTTPStatus.MULTIPLE_CHOICES:
            logger.debug(
                f"Status check for operation {self.operation_id} "
                f"returned {response.status_code}, polling again"
            )
            return False
        operation = Operation.deserialize(response.body)
        logger.debug(f"Operation {self.operation_id} is {operation.status}")
        return operation.is_terminal

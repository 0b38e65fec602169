"""Shared fixtures: fake transports, clocks and an isolated metrics registry."""

import logging
from typing import Callable, List, Optional, Union

import pytest
from prometheus_client import CollectorRegistry
from requests.structures import CaseInsensitiveDict

from azurekit.transport.http import HTTPRequest, HTTPResponse, Transport
from azurekit.transport.metrics import ClientMetrics


def make_response(status_code: int, body: bytes = b"", headers: Optional[dict] = None) -> HTTPResponse:
    """Build an HTTPResponse for a fake transport."""
    return HTTPResponse(
        status_code=status_code,
        body=body,
        headers=CaseInsensitiveDict(headers or {}),
    )


class FakeTransport(Transport):
    """
    Transport returning canned responses and recording every request.

    Each entry of ``responses`` is either an HTTPResponse or an exception
    to raise. The last entry is repeated once the list is exhausted.
    """

    def __init__(self, *responses: Union[HTTPResponse, Exception]):
        self.responses: List[Union[HTTPResponse, Exception]] = list(responses) or [make_response(200)]
        self.requests: List[HTTPRequest] = []
        self.on_send: Optional[Callable[[HTTPRequest], None]] = None

    def send(self, request: HTTPRequest) -> HTTPResponse:
        self.requests.append(request)
        if self.on_send is not None:
            self.on_send(request)
        index = min(len(self.requests), len(self.responses)) - 1
        outcome = self.responses[index]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeClock:
    """Monotonic clock advanced only by its own sleep()."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def metrics():
    """ClientMetrics bound to a private registry."""
    return ClientMetrics(registry=CollectorRegistry())


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def restore_package_logger():
    """Undo setup_logging() changes to the azurekit logger."""
    package_logger = logging.getLogger("azurekit")
    handlers = list(package_logger.handlers)
    level, propagate = package_logger.level, package_logger.propagate
    yield package_logger
    for handler in package_logger.handlers:
        if handler not in handlers:
            handler.close()
    package_logger.handlers = handlers
    package_logger.setLevel(level)
    package_logger.propagate = propagate


OPERATION_XML = (
    '<?xml version="1.0" encoding="utf-8"?>'
    '<Operation xmlns="http://schemas.microsoft.com/windowsazure">'
    '<ID>{id}</ID><Status>{status}</Status><HttpStatusCode>{http_status}</HttpStatusCode>'
    '{error}'
    '</Operation>'
)


def operation_body(status: str, operation_id: str = "op-1", http_status: int = 200,
                   code: str = "", message: str = "") -> bytes:
    """XML body of an operation status response."""
    error = f"<Error><Code>{code}</Code><Message>{message}</Message></Error>" if code else ""
    return OPERATION_XML.format(
        id=operation_id, status=status, http_status=http_status, error=error
    ).encode("utf-8")


def error_body(code: str, message: str) -> bytes:
    """XML body of a provider error envelope."""
    return (
        '<?xml version="1.0" encoding="utf-8"?>'
        f'<Error><Code>{code}</Code><Message>{message}</Message></Error>'
    ).encode("utf-8")

"""
HTTP transport abstraction.

Clients never talk to the network directly: they hand fully-formed
HTTPRequest objects to a Transport injected at construction time. The
default RequestsTransport uses ``requests``; tests inject fakes.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

import requests
from requests.structures import CaseInsensitiveDict

logger = logging.getLogger(__name__)


class HTTPMethod(str, Enum):
    """HTTP methods supported by the Azure APIs."""

    GET = "GET"
    PUT = "PUT"
    POST = "POST"
    DELETE = "DELETE"


@dataclass
class HTTPRequest:
    """An outgoing request. Headers map a name to one or more values."""

    method: HTTPMethod
    url: str
    headers: Dict[str, List[str]] = field(default_factory=dict)
    body: Optional[bytes] = None

    def set_header(self, name: str, value: str) -> None:
        """Replace all values of a header, matching its name case-insensitively."""
        for existing in [key for key in self.headers if key.lower() == name.lower()]:
            del self.headers[existing]
        self.headers[name] = [value]

    def add_header(self, name: str, value: str) -> None:
        """Append a value to a header."""
        for existing, values in self.headers.items():
            if existing.lower() == name.lower():
                values.append(value)
                return
        self.headers[name] = [value]

    def get_header(self, name: str) -> str:
        """Return the first value of a header, or an empty string."""
        for existing, values in self.headers.items():
            if existing.lower() == name.lower() and values:
                return values[0]
        return ""

    def flat_headers(self) -> Dict[str, str]:
        """Headers with multiple values joined by commas, as sent on the wire."""
        return {name: ",".join(values) for name, values in self.headers.items()}


@dataclass
class HTTPResponse:
    """A response read fully into memory."""

    status_code: int
    body: bytes = b""
    headers: CaseInsensitiveDict = field(default_factory=CaseInsensitiveDict)


class Transport(ABC):
    """Sends one request and returns the complete response."""

    @abstractmethod
    def send(self, request: HTTPRequest) -> HTTPResponse:
        """
        Send a request.

        Raises:
            requests.RequestException: On network-level failures
        """


class RequestsTransport(Transport):
    """
    Transport backed by a ``requests.Session``.

    Redirects are not followed automatically; callers that need to follow
    temporary redirects do it themselves so that headers are preserved.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = 60.0,
        cert: Optional[Union[str, Tuple[str, str]]] = None,
    ):
        """
        Args:
            session: Session to use (a new one by default)
            timeout: Per-request socket timeout in seconds
            cert: Client certificate file (or cert, key pair) for
                certificate-authenticated APIs
        """
        self.session = session or requests.Session()
        self.timeout = timeout
        self.cert = cert

    def send(self, request: HTTPRequest) -> HTTPResponse:
        logger.debug(f"Request: {request.method.value} {request.url}")
        if request.body:
            logger.debug(f"Request body: {len(request.body)} bytes")

        response = self.session.request(
            request.method.value,
            request.url,
            headers=request.flat_headers(),
            data=request.body,
            allow_redirects=False,
            timeout=self.timeout,
            cert=self.cert,
        )

        logger.debug(f"Response: {response.status_code} {response.reason}")
        return HTTPResponse(
            status_code=response.status_code,
            body=response.content,
            headers=CaseInsensitiveDict(response.headers),
        )

    def close(self) -> None:
        """Close the underlying session."""
        self.session.close()

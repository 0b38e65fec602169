"""
Certificate-authenticated session for the Azure service management API.

The management API authenticates callers with a client certificate rather
than a signature. Every request carries an ``x-ms-version`` header, is sent
through the session's transport under its retry policy, and follows
temporary redirects while keeping its headers.

Author: AzureKit Team
Date: 2026-01-27
"""

import logging
import time
from dataclasses import replace
from http import HTTPStatus
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import quote_plus, urljoin

from cryptography import x509
from cryptography.hazmat.primitives import serialization

from azurekit.endpoints import get_endpoint
from azurekit.exceptions import AzureKitError, InvalidRequestError
from azurekit.transport.errors import HTTPError, new_http_error
from azurekit.transport.http import HTTPMethod, HTTPRequest, HTTPResponse, RequestsTransport, Transport
from azurekit.transport.metrics import ClientMetrics
from azurekit.transport.retry_policy import NO_RETRY_POLICY, RetryPolicy

logger = logging.getLogger(__name__)

MAX_REDIRECTS = 10


class CertificateError(AzureKitError):
    """Raised when the management certificate file cannot be used."""

    error_code = "InvalidCertificate"


class TooManyRedirectsError(AzureKitError):
    """Raised when the server keeps redirecting a request."""

    error_code = "TooManyRedirects"


def load_certificate(cert_file: str) -> x509.Certificate:
    """
    Load and check a PEM file holding both a certificate and its private key.

    Args:
        cert_file: Path to the PEM file

    Returns:
        The parsed certificate

    Raises:
        CertificateError: If the file is missing or does not hold both parts
    """
    try:
        data = Path(cert_file).read_bytes()
    except OSError as exc:
        raise CertificateError(f"cannot read certificate file {cert_file}: {exc}") from exc

    try:
        certificate = x509.load_pem_x509_certificate(data)
        serialization.load_pem_private_key(data, password=None)
    except (ValueError, TypeError) as exc:
        raise CertificateError(f"invalid certificate file {cert_file}: {exc}") from exc

    logger.info(f"Loaded management certificate {certificate.subject.rfc4514_string()}")
    return certificate


class ManagementSession:
    """
    Sends requests to the management API on behalf of one subscription.

    ``cert_file`` may be empty, in which case no client certificate is
    loaded; this is meant for tests that inject a fake transport.
    """

    def __init__(
        self,
        subscription_id: str,
        cert_file: str = "",
        location: str = "",
        retry_policy: RetryPolicy = NO_RETRY_POLICY,
        transport: Optional[Transport] = None,
        metrics: Optional[ClientMetrics] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            subscription_id: Azure subscription ID
            cert_file: PEM file with the management certificate and key
            location: Region name, used to select the API endpoint
            retry_policy: Policy applied to every request
            transport: Transport used to send requests
            metrics: Metrics collector (global instance by default)
            sleep: Used to wait between retries
        """
        self.subscription_id = subscription_id
        self.cert_file = cert_file
        self.certificate = load_certificate(cert_file) if cert_file else None
        self.retry_policy = retry_policy
        self.transport = transport or RequestsTransport(cert=cert_file or None)
        self.metrics = metrics
        self.base_url = get_endpoint(location).management_api()
        self._sleep = sleep

    def compose_url(self, path: str) -> str:
        """
        Build the URL of an API path relative to the subscription.

        Raises:
            InvalidRequestError: If the path is absolute
        """
        if path.startswith("/"):
            raise InvalidRequestError(f"got absolute API path '{path}' instead of relative one")
        return urljoin(self.base_url, quote_plus(self.subscription_id) + "/" + path)

    def send(
        self,
        method: HTTPMethod,
        path: str,
        api_version: str,
        body: Optional[bytes] = None,
        content_type: str = "",
    ) -> HTTPResponse:
        """
        Send a request and return the response whatever its status.

        Raises:
            TooManyRedirectsError: After MAX_REDIRECTS temporary redirects
            requests.RequestException: On network failures that are not retried
        """
        request = HTTPRequest(method=method, url=self.compose_url(path), body=body)
        if content_type:
            request.set_header("Content-Type", content_type)
        request.set_header("x-ms-version", api_version)

        for _ in range(MAX_REDIRECTS):
            retrier = self.retry_policy.get_retrier(
                self.transport, metrics=self.metrics, sleep=self._sleep
            )
            response = retrier.retry_request(lambda: request)
            if response.status_code != HTTPStatus.TEMPORARY_REDIRECT:
                return response
            location = response.headers.get("Location")
            if not location:
                return response
            logger.debug(f"Following temporary redirect to {location}")
            request = replace(request, url=urljoin(request.url, location))

        raise TooManyRedirectsError(f"stopped after {MAX_REDIRECTS} redirects")

    @staticmethod
    def get_server_error(status_code: int, body: bytes, description: str) -> Optional[HTTPError]:
        """Return the HTTPError matching a non-2xx status, or None on success."""
        if status_code < HTTPStatus.OK or status_code >= HTTPStatus.MULTIPLE_CHOICES:
            return new_http_error(status_code, body, description)
        return None

    def _checked(self, response: HTTPResponse, description: str) -> HTTPResponse:
        error = self.get_server_error(response.status_code, response.body, description)
        if error is not None:
            raise error
        return response

    def get(self, path: str, api_version: str) -> HTTPResponse:
        """Perform a GET request, raising an HTTPError on a non-2xx status."""
        return self._checked(
            self.send(HTTPMethod.GET, path, api_version),
            "GET request failed"
        )

    def post(self, path: str, api_version: str, body: bytes, content_type: str) -> HTTPResponse:
        """
        Perform a POST request, raising an HTTPError on a non-2xx status.

        Azure may perform POST operations asynchronously; pass the response
        to ``ManagementAPI.block_until_completed`` if unsure.
        """
        return self._checked(
            self.send(HTTPMethod.POST, path, api_version, body, content_type),
            "POST request failed"
        )

    def put(self, path: str, api_version: str, body: bytes, content_type: str) -> HTTPResponse:
        """Perform a PUT request, raising an HTTPError on a non-2xx status."""
        return self._checked(
            self.send(HTTPMethod.PUT, path, api_version, body, content_type),
            "PUT request failed"
        )

    def delete(self, path: str, api_version: str) -> HTTPResponse:
        """Perform a DELETE request, raising an HTTPError on a non-2xx status."""
        return self._checked(
            self.send(HTTPMethod.DELETE, path, api_version),
            "DELETE request failed"
        )

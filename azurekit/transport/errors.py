"""
HTTP error kinds surfaced by the storage and management clients.

Two kinds exist for unexpected HTTP statuses:

- ProviderError: the body carried the provider's XML ``Error`` envelope, so
  a Code/Message pair is available.
- TransportError: the body was not an error envelope; only the status is
  known.

Both carry the HTTP status so that callers can treat 404 uniformly, see
``is_not_found_error``.
"""

import copy
from http import HTTPStatus
from typing import TYPE_CHECKING, Optional
from xml.etree import ElementTree as ET

from azurekit.exceptions import AzureKitError
from azurekit.utils import find_child_text, local_name

if TYPE_CHECKING:
    from azurekit.management.operations import Operation


def status_text(status_code: int) -> str:
    """Return the reason phrase of an HTTP status code."""
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return ""


class HTTPError(AzureKitError):
    """An error carrying the HTTP status code of a failed request."""

    error_code = "HTTPError"

    def __init__(self, status_code: int, description: str):
        self.status_code = status_code
        self.description = description
        super().__init__(self._format())

    def _format(self) -> str:
        return f"{self.description} ({self.status_code}: {status_text(self.status_code)})"

    def __copy__(self) -> "HTTPError":
        # args holds only the formatted message, so __init__ cannot be replayed.
        duplicate = type(self).__new__(type(self))
        duplicate.__dict__.update(self.__dict__)
        duplicate.details = dict(self.details)
        duplicate.args = self.args
        return duplicate

    def with_description(self, description: str) -> "HTTPError":
        """Return a copy of this error with a new description."""
        extended = copy.copy(self)
        extended.description = description
        extended.message = extended._format()
        extended.args = (extended.message,)
        return extended


class TransportError(HTTPError):
    """Generic HTTP failure without any structured detail from the server."""

    error_code = "TransportError"


class ProviderError(HTTPError):
    """HTTP failure described by the provider's Code/Message error envelope."""

    error_code = "ProviderError"

    def __init__(self, status_code: int, description: str, code: str, message: str):
        self.code = code
        self.provider_message = message
        super().__init__(status_code, description)

    def _format(self) -> str:
        return (
            f"{self.description}: {self.code} - {self.provider_message} "
            f"(http code {self.status_code}: {status_text(self.status_code)})"
        )


class PollingTimeoutError(AzureKitError):
    """Raised when an asynchronous operation does not finish in time."""

    error_code = "PollingTimeout"

    def __init__(self, message: str = "polling timed out waiting for an asynchronous operation"):
        super().__init__(message)


def parse_error_envelope(body: bytes) -> Optional[ET.Element]:
    """Parse an XML ``Error`` envelope, returning None if the body is not one."""
    if not body:
        return None
    try:
        root = ET.fromstring(body)
    except ET.ParseError:
        return None
    if local_name(root.tag) != "Error":
        return None
    return root


def new_http_error(status_code: int, body: bytes, description: str) -> HTTPError:
    """
    Build the appropriate HTTPError for a failed response.

    Args:
        status_code: HTTP status of the response
        body: Raw response body
        description: What the caller was trying to do

    Returns:
        ProviderError if the body is an XML error envelope, else TransportError
    """
    envelope = parse_error_envelope(body)
    if envelope is None:
        return TransportError(status_code, description)
    return ProviderError(
        status_code,
        description,
        code=find_child_text(envelope, "Code"),
        message=find_child_text(envelope, "Message"),
    )


def new_provider_error_from_operation(operation: "Operation") -> ProviderError:
    """
    Build a ProviderError from the outcome of a failed asynchronous operation.

    Raises:
        ValueError: If the operation did not fail
    """
    if not operation.failed:
        raise ValueError(
            f"interpreting Azure {operation.status} as an asynchronous failure"
        )
    return ProviderError(
        operation.http_status_code,
        "asynchronous operation failed",
        code=operation.error_code,
        message=operation.error_message,
    )


def extend_error(error: Exception, prefix: str) -> Exception:
    """
    Prefix an error's description, preserving HTTP error kinds.

    HTTPError instances keep their class, status and provider detail; any
    other error becomes an AzureKitError. Use as ``raise extend_error(e, msg)
    from e``.
    """
    if isinstance(error, HTTPError):
        return error.with_description(prefix + error.description)
    return AzureKitError(f"{prefix}{error}")


def is_not_found_error(error: Optional[BaseException]) -> bool:
    """Whether an error is an HTTPError for a 404 Not Found response."""
    return isinstance(error, HTTPError) and error.status_code == HTTPStatus.NOT_FOUND

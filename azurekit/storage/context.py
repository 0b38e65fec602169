"""
Blob storage client.

StorageContext turns RequestParams into signed HTTP requests, sends them
through an injected transport under a retry policy, and converts unexpected
statuses into HTTP errors. The blob and container operations are thin
wrappers over ``perform_request``.

Reference: http://msdn.microsoft.com/en-us/library/windowsazure/dd179355.aspx

Author: AzureKit Team
Date: 2026-01-22
"""

import base64
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import formatdate
from http import HTTPStatus
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional
from urllib.parse import quote_plus, urlencode

from pydantic import BaseModel, ConfigDict, Field
from requests.structures import CaseInsensitiveDict

from azurekit.auth.sharedkey import SignableRequest, compose_auth_header
from azurekit.auth.shared_signature import get_read_blob_access_values
from azurekit.endpoints import APIEndpoint, get_endpoint
from azurekit.exceptions import DeserializationError, InvalidRequestError
from azurekit.storage.models import (
    Blob,
    BlobEnumerationResults,
    BlobType,
    BlockList,
    Container,
    ContainerAccess,
    ContainerEnumerationResults,
    ContainerProperties,
    GetBlockList,
)
from azurekit.transport.errors import HTTPError, extend_error, is_not_found_error, new_http_error
from azurekit.transport.http import HTTPMethod, HTTPRequest, HTTPResponse, RequestsTransport, Transport
from azurekit.transport.metrics import ClientMetrics
from azurekit.transport.retry_policy import NO_RETRY_POLICY, RetryPolicy
from azurekit.utils import add_url_query_params

if TYPE_CHECKING:
    from azurekit.core.config_manager import AzureKitConfig

logger = logging.getLogger(__name__)

STORAGE_API_VERSION = "2012-02-12"
PAGE_SIZE = 512


class RequestParams(BaseModel):
    """
    Parameters of one storage API request.

    Construction fails with a pydantic ValidationError when a required field
    is missing or the method is not one of GET, PUT, POST or DELETE.
    """

    model_config = ConfigDict(frozen=True)

    method: HTTPMethod
    url: str = Field(..., min_length=1)
    api_version: str = Field(..., min_length=1)
    expected_status: int = Field(..., ge=100, le=599)
    body: Optional[bytes] = None
    extra_headers: Dict[str, List[str]] = Field(default_factory=dict)
    result: Optional[Callable[[bytes], Any]] = Field(
        default=None,
        description="Deserializer applied to the body of a successful response"
    )


@dataclass
class StorageResponse:
    """Body, headers and deserialized result of a successful request."""

    body: bytes
    headers: CaseInsensitiveDict = field(default_factory=CaseInsensitiveDict)
    result: Any = None


def format_date_header(now: datetime) -> str:
    """Format a timestamp as RFC1123 with the GMT zone name, independent of the locale."""
    return formatdate(now.timestamp(), usegmt=True)


def add_version_header(request: HTTPRequest, api_version: str) -> None:
    request.set_header("x-ms-version", api_version)


def add_date_header(request: HTTPRequest, now: datetime) -> None:
    request.set_header("Date", format_date_header(now))


def add_content_headers(request: HTTPRequest) -> None:
    """
    Set Content-Length from the body.

    PUT and POST without a body must carry "Content-Length: 0"; GET and
    DELETE without a body must not carry it at all. The body is always sent
    as bytes with an exact length, never chunked.
    """
    if request.body is None:
        if request.method in (HTTPMethod.PUT, HTTPMethod.POST):
            request.set_header("Content-Length", "0")
        return
    request.set_header("Content-Length", str(len(request.body)))


class StorageContext:
    """
    Mandatory parameters for talking to the blob storage API of one account.

    Access is anonymous when ``key`` is empty: requests are then sent
    without an Authorization header.
    """

    def __init__(
        self,
        account: str,
        key: str = "",
        azure_endpoint: Optional[APIEndpoint] = None,
        transport: Optional[Transport] = None,
        retry_policy: RetryPolicy = NO_RETRY_POLICY,
        metrics: Optional[ClientMetrics] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            account: Storage account name
            key: Base64-encoded account key, or "" for anonymous access
            azure_endpoint: Base endpoint, see ``get_endpoint``
            transport: Transport used to send requests
            retry_policy: Policy applied to every request
            metrics: Metrics collector (global instance by default)
            clock: Source of the Date header timestamp
            sleep: Used to wait between retries
        """
        self.account = account
        self.key = key
        self.azure_endpoint = azure_endpoint
        self.transport = transport or RequestsTransport()
        self.retry_policy = retry_policy
        self.metrics = metrics
        self._clock = clock
        self._sleep = sleep

    @classmethod
    def from_config(cls, config: "AzureKitConfig", **kwargs) -> "StorageContext":
        """Build a context from the storage and retry sections of a configuration."""
        return cls(
            account=config.storage.account,
            key=config.storage.key,
            azure_endpoint=get_endpoint(config.storage.location),
            retry_policy=config.retry.to_policy(),
            **kwargs,
        )

    # ========== Request dispatch ==========

    def sign_request(self, request: HTTPRequest) -> None:
        """
        Add the Authorization header to a request.

        No further changes may be made to the request before sending it, or
        the signature becomes invalid.
        """
        if not self.key:
            return
        signable = SignableRequest.from_url(request.method.value, request.url, request.headers)
        request.set_header("Authorization", compose_auth_header(signable, self.account, self.key))

    def build_request(self, params: RequestParams) -> HTTPRequest:
        """Build the fully-headed, signed request for a set of parameters."""
        request = HTTPRequest(method=params.method, url=params.url, body=params.body)
        for name, values in params.extra_headers.items():
            for value in values:
                request.add_header(name, value)
        add_version_header(request, params.api_version)
        add_date_header(request, self._clock())
        add_content_headers(request)
        self.sign_request(request)
        return request

    def perform_request(self, params: RequestParams) -> StorageResponse:
        """
        Issue a request to the storage API.

        The request is rebuilt for each retry attempt, so every attempt
        carries a fresh Date header and signature.

        Raises:
            InvalidKeyError: If the account key cannot be used for signing
            HTTPError: If the response status is not the expected one
            DeserializationError: If the result deserializer fails
        """
        retrier = self.retry_policy.get_retrier(
            self.transport, metrics=self.metrics, sleep=self._sleep
        )
        response = retrier.retry_request(lambda: self.build_request(params))
        return self.read_response(response, params.result, params.expected_status)

    def read_response(
        self,
        response: HTTPResponse,
        result: Optional[Callable[[bytes], Any]],
        expected_status: int,
    ) -> StorageResponse:
        """Check a response's status and deserialize its body."""
        if response.status_code != expected_status:
            raise new_http_error(response.status_code, response.body, "Azure request failed")

        # No deserializer: the caller only wants the raw body.
        if result is None:
            return StorageResponse(body=response.body, headers=response.headers)

        try:
            value = result(response.body)
        except DeserializationError:
            raise
        except (ValueError, TypeError) as exc:
            raise DeserializationError(f"Failed to deserialize data: {exc}") from exc
        return StorageResponse(body=response.body, headers=response.headers, result=value)

    # ========== URLs ==========

    def get_account_url(self) -> str:
        """Base URL of the account's blob service. Ends in a slash."""
        if not self.azure_endpoint:
            raise InvalidRequestError("no azure_endpoint specified in StorageContext")
        return self.azure_endpoint.blob_storage_api(self.account)

    def get_container_url(self, container: str) -> str:
        """URL of a container. Does not end in a slash."""
        return self.get_account_url().rstrip("/") + "/" + quote_plus(container)

    def get_file_url(self, container: str, filename: str) -> str:
        """URL of a blob in a container. Does not end in a slash."""
        return self.get_container_url(container) + "/" + quote_plus(filename)

    def get_anonymous_file_url(self, container: str, filename: str, expires: datetime) -> str:
        """
        URL granting read access to a blob until ``expires``, without a key.

        Raises:
            InvalidKeyError: If the account key cannot be used for signing
        """
        values = get_read_blob_access_values(container, filename, self.account, self.key, expires)
        return f"{self.get_file_url(container, filename)}?{urlencode(sorted(values.items()))}"

    # ========== Listing ==========

    def list_containers(self, marker: str = "") -> ContainerEnumerationResults:
        """
        Fetch one batch of the account's containers.

        Args:
            marker: Empty for the first batch, then the ``next_marker`` of
                the previous batch
        """
        url = add_url_query_params(self.get_account_url(), "comp", "list")
        if marker:
            url = add_url_query_params(url, "marker", marker)
        try:
            response = self.perform_request(RequestParams(
                method=HTTPMethod.GET,
                url=url,
                api_version=STORAGE_API_VERSION,
                result=ContainerEnumerationResults.deserialize,
                expected_status=HTTPStatus.OK,
            ))
        except HTTPError as exc:
            raise extend_error(exc, "request for containers list failed: ") from exc
        return response.result

    def list_blobs(self, container: str, marker: str = "", prefix: str = "") -> BlobEnumerationResults:
        """
        Fetch one batch of the blobs in a container.

        Args:
            container: Container name
            marker: Empty for the first batch, then the ``next_marker`` of
                the previous batch
            prefix: Only list blobs whose names start with this
        """
        url = add_url_query_params(
            self.get_container_url(container), "restype", "container", "comp", "list"
        )
        if marker:
            url = add_url_query_params(url, "marker", marker)
        if prefix:
            url = add_url_query_params(url, "prefix", prefix)
        try:
            response = self.perform_request(RequestParams(
                method=HTTPMethod.GET,
                url=url,
                api_version=STORAGE_API_VERSION,
                result=BlobEnumerationResults.deserialize,
                expected_status=HTTPStatus.OK,
            ))
        except HTTPError as exc:
            raise extend_error(exc, "request for blobs list failed: ") from exc
        return response.result

    def list_all_containers(self) -> ContainerEnumerationResults:
        """
        List every container, following markers across batches.

        Returns the last batch with the containers of all batches.
        """
        containers: List[Container] = []
        batch = self.list_containers()
        containers.extend(batch.containers)
        while batch.next_marker:
            batch = self.list_containers(marker=batch.next_marker)
            containers.extend(batch.containers)
        return batch.model_copy(update={"containers": containers})

    def list_all_blobs(self, container: str, prefix: str = "") -> BlobEnumerationResults:
        """
        List every blob in a container, following markers across batches.

        Returns the last batch with the blobs of all batches.
        """
        blobs: List[Blob] = []
        batch = self.list_blobs(container, prefix=prefix)
        blobs.extend(batch.blobs)
        while batch.next_marker:
            batch = self.list_blobs(container, marker=batch.next_marker, prefix=prefix)
            blobs.extend(batch.blobs)
        return batch.model_copy(update={"blobs": blobs})

    def delete_all_blobs(self, container: str) -> None:
        """
        Delete every blob in a container.

        The service deletes blobs lazily, so some may still be listed for a
        while after this returns.
        """
        blobs = self.list_all_blobs(container).blobs
        logger.debug(f"Deleting {len(blobs)} blobs from container {container}")
        for blob in blobs:
            self.delete_blob(container, blob.name)

    # ========== Containers ==========

    def create_container(self, container: str) -> None:
        """Create a new container."""
        url = add_url_query_params(self.get_container_url(container), "restype", "container")
        try:
            self.perform_request(RequestParams(
                method=HTTPMethod.PUT,
                url=url,
                api_version=STORAGE_API_VERSION,
                expected_status=HTTPStatus.CREATED,
            ))
        except HTTPError as exc:
            raise extend_error(exc, f"failed to create container {container}: ") from exc

    def delete_container(self, container: str) -> None:
        """Delete a container and every blob in it. Deleting a missing container succeeds."""
        url = add_url_query_params(self.get_container_url(container), "restype", "container")
        try:
            self.perform_request(RequestParams(
                method=HTTPMethod.DELETE,
                url=url,
                api_version=STORAGE_API_VERSION,
                expected_status=HTTPStatus.ACCEPTED,
            ))
        except HTTPError as exc:
            if is_not_found_error(exc):
                logger.debug(f"Container {container} does not exist, nothing to delete")
                return
            raise extend_error(exc, f"failed to delete container {container}: ") from exc

    def get_container_properties(self, container: str) -> ContainerProperties:
        """Fetch a container's properties. Doubles as an existence check."""
        url = add_url_query_params(self.get_container_url(container), "restype", "container")
        try:
            response = self.perform_request(RequestParams(
                method=HTTPMethod.GET,
                url=url,
                api_version=STORAGE_API_VERSION,
                expected_status=HTTPStatus.OK,
            ))
        except HTTPError as exc:
            raise extend_error(exc, f"failed to find container {container}: ") from exc

        headers = response.headers
        return ContainerProperties(
            last_modified=headers.get("Last-Modified", ""),
            etag=headers.get("ETag", ""),
            lease_status=headers.get("x-ms-lease-status", ""),
            lease_state=headers.get("x-ms-lease-state", ""),
            lease_duration=headers.get("x-ms-lease-duration", ""),
        )

    def set_container_acl(self, container: str, access: ContainerAccess) -> None:
        """Set a container's public access level."""
        access = ContainerAccess(access)
        url = add_url_query_params(
            self.get_container_url(container), "restype", "container", "comp", "acl"
        )
        extra_headers: Dict[str, List[str]] = {}
        # Omitting the header resets the container to private.
        if access != ContainerAccess.PRIVATE:
            extra_headers["x-ms-blob-public-access"] = [access.value]
        try:
            self.perform_request(RequestParams(
                method=HTTPMethod.PUT,
                url=url,
                api_version="2009-09-19",
                extra_headers=extra_headers,
                expected_status=HTTPStatus.OK,
            ))
        except HTTPError as exc:
            raise extend_error(exc, f"failed to set ACL for container {container}: ") from exc

    # ========== Blobs ==========

    def put_blob(self, container: str, filename: str, blob_type: BlobType, size: int = 0) -> None:
        """
        Create an empty blob. This does not upload any data.

        Args:
            container: Container name
            filename: Name of the new blob
            blob_type: Block or page blob
            size: Size of a page blob, a non-zero multiple of 512

        Raises:
            InvalidRequestError: If a page blob size is missing or misaligned
        """
        blob_type = BlobType(blob_type)
        extra_headers = {"x-ms-blob-type": [blob_type.header_value]}
        if blob_type == BlobType.PAGE:
            if size == 0:
                raise InvalidRequestError("Must supply a size for a page blob")
            if size % PAGE_SIZE != 0:
                raise InvalidRequestError(f"Size must be a multiple of {PAGE_SIZE} bytes")
            extra_headers["x-ms-blob-content-length"] = [str(size)]

        try:
            self.perform_request(RequestParams(
                method=HTTPMethod.PUT,
                url=self.get_file_url(container, filename),
                api_version=STORAGE_API_VERSION,
                extra_headers=extra_headers,
                expected_status=HTTPStatus.CREATED,
            ))
        except HTTPError as exc:
            raise extend_error(exc, f"failed to create blob {filename}: ") from exc

    def put_page(self, container: str, filename: str, start_range: int, end_range: int, data: bytes) -> None:
        """
        Write a range of data into a page blob.

        Raises:
            InvalidRequestError: If the range is not page-aligned
        """
        if start_range % PAGE_SIZE != 0 or end_range % PAGE_SIZE != PAGE_SIZE - 1:
            raise InvalidRequestError(
                "StartRange must be a multiple of 512, EndRange must be one less than a multiple of 512"
            )
        url = add_url_query_params(self.get_file_url(container, filename), "comp", "page")
        try:
            self.perform_request(RequestParams(
                method=HTTPMethod.PUT,
                url=url,
                body=data,
                api_version=STORAGE_API_VERSION,
                extra_headers={
                    "x-ms-range": [f"bytes={start_range}-{end_range}"],
                    "x-ms-page-write": ["update"],
                },
                expected_status=HTTPStatus.CREATED,
            ))
        except HTTPError as exc:
            raise extend_error(exc, f"failed to put page for file {filename}: ") from exc

    def put_block(self, container: str, filename: str, block_id: str, data: bytes) -> None:
        """Upload one block of a block blob."""
        encoded_id = base64.b64encode(block_id.encode("utf-8")).decode("ascii")
        url = add_url_query_params(
            self.get_file_url(container, filename), "comp", "block", "blockid", encoded_id
        )
        try:
            self.perform_request(RequestParams(
                method=HTTPMethod.PUT,
                url=url,
                body=data,
                api_version=STORAGE_API_VERSION,
                expected_status=HTTPStatus.CREATED,
            ))
        except HTTPError as exc:
            raise extend_error(exc, f"failed to put block {block_id} for file {filename}: ") from exc

    def put_block_list(self, container: str, filename: str, block_list: BlockList) -> None:
        """Commit a list of uploaded blocks as the content of a blob."""
        url = add_url_query_params(self.get_file_url(container, filename), "comp", "blocklist")
        try:
            self.perform_request(RequestParams(
                method=HTTPMethod.PUT,
                url=url,
                body=block_list.serialize(),
                api_version=STORAGE_API_VERSION,
                expected_status=HTTPStatus.CREATED,
            ))
        except HTTPError as exc:
            raise extend_error(exc, f"failed to put blocklist for file {filename}: ") from exc

    def get_block_list(self, container: str, filename: str) -> GetBlockList:
        """List the committed and uncommitted blocks of a blob."""
        url = add_url_query_params(
            self.get_file_url(container, filename), "comp", "blocklist", "blocklisttype", "all"
        )
        try:
            response = self.perform_request(RequestParams(
                method=HTTPMethod.GET,
                url=url,
                api_version=STORAGE_API_VERSION,
                result=GetBlockList.deserialize,
                expected_status=HTTPStatus.OK,
            ))
        except HTTPError as exc:
            raise extend_error(exc, f"request for block list in file {filename} failed: ") from exc
        return response.result

    def get_blob(self, container: str, filename: str) -> bytes:
        """Download a blob's content."""
        try:
            response = self.perform_request(RequestParams(
                method=HTTPMethod.GET,
                url=self.get_file_url(container, filename),
                api_version=STORAGE_API_VERSION,
                expected_status=HTTPStatus.OK,
            ))
        except HTTPError as exc:
            raise extend_error(exc, f"failed to get blob {filename!r}: ") from exc
        return response.body

    def delete_blob(self, container: str, filename: str) -> None:
        """Delete a blob. Deleting a missing blob succeeds."""
        try:
            self.perform_request(RequestParams(
                method=HTTPMethod.DELETE,
                url=self.get_file_url(container, filename),
                api_version=STORAGE_API_VERSION,
                expected_status=HTTPStatus.ACCEPTED,
            ))
        except HTTPError as exc:
            if is_not_found_error(exc):
                logger.debug(f"Blob {filename} does not exist, nothing to delete")
                return
            raise extend_error(exc, f"failed to delete blob {filename}: ") from exc

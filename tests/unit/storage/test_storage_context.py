"""Tests for the blob storage client."""

import base64
import locale
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import pytest
from pydantic import ValidationError

from azurekit.auth.exceptions import InvalidKeyError
from azurekit.core.config_manager import AzureKitConfig
from azurekit.endpoints import get_endpoint
from azurekit.exceptions import DeserializationError, InvalidRequestError
from azurekit.storage.context import (
    RequestParams,
    StorageContext,
    add_content_headers,
    format_date_header,
)
from azurekit.storage.models import BlobType, BlockList, BlockListType, ContainerAccess
from azurekit.transport.errors import ProviderError, TransportError
from azurekit.transport.http import HTTPMethod, HTTPRequest
from azurekit.transport.retry_policy import RetryPolicy

from conftest import FakeClock, FakeTransport, error_body, make_response

KEY = base64.b64encode(b"key").decode("ascii")
NOW = datetime(2006, 1, 2, 15, 4, 5, tzinfo=timezone.utc)


@pytest.fixture
def transport():
    return FakeTransport(make_response(201))


@pytest.fixture
def context(transport, metrics):
    return StorageContext(
        account="account",
        key=KEY,
        azure_endpoint=get_endpoint("West US"),
        transport=transport,
        metrics=metrics,
        clock=lambda: NOW,
    )


class TestRequestHeaders:
    """Test the headers added to every request."""

    def test_date_format(self):
        """Test RFC1123 dates with GMT."""
        assert format_date_header(NOW) == "Mon, 02 Jan 2006 15:04:05 GMT"

    def test_date_format_ignores_locale(self):
        """Test that day and month names stay English under another locale."""
        previous = locale.setlocale(locale.LC_TIME)
        try:
            locale.setlocale(locale.LC_TIME, "de_DE.UTF-8")
        except locale.Error:
            pytest.skip("de_DE.UTF-8 locale not installed")
        try:
            assert format_date_header(NOW) == "Mon, 02 Jan 2006 15:04:05 GMT"
        finally:
            locale.setlocale(locale.LC_TIME, previous)

    def test_date_format_converts_to_utc(self):
        eastern = timezone(timedelta(hours=-5))
        assert format_date_header(datetime(2006, 1, 2, 10, 4, 5, tzinfo=eastern)) == (
            "Mon, 02 Jan 2006 15:04:05 GMT"
        )

    def test_content_length_zero_for_empty_put(self):
        request = HTTPRequest(method=HTTPMethod.PUT, url="https://x/")
        add_content_headers(request)
        assert request.get_header("Content-Length") == "0"

    def test_content_length_zero_for_empty_post(self):
        request = HTTPRequest(method=HTTPMethod.POST, url="https://x/")
        add_content_headers(request)
        assert request.get_header("Content-Length") == "0"

    def test_no_content_length_for_get(self):
        request = HTTPRequest(method=HTTPMethod.GET, url="https://x/")
        add_content_headers(request)
        assert "Content-Length" not in request.headers

    def test_exact_content_length(self):
        request = HTTPRequest(method=HTTPMethod.PUT, url="https://x/", body=b"12345")
        add_content_headers(request)
        assert request.get_header("Content-Length") == "5"

    def test_signed_request(self, context, transport):
        """Test the headers and signature of a create container request."""
        context.create_container("mycontainer")

        request = transport.requests[0]
        assert request.method == HTTPMethod.PUT
        assert request.url == "https://account.blob.core.windows.net/mycontainer?restype=container"
        assert request.get_header("x-ms-version") == "2012-02-12"
        assert request.get_header("Date") == "Mon, 02 Jan 2006 15:04:05 GMT"
        assert request.get_header("Content-Length") == "0"
        assert request.get_header("Authorization") == (
            "SharedKey account:AkgJOBnwAFklP90XB+EP0rY92vDC5+/Aro7T7i47gvo="
        )

    def test_anonymous_request_unsigned(self, transport, metrics):
        """Test that an empty key sends no Authorization header."""
        context = StorageContext(
            account="account",
            azure_endpoint=get_endpoint("West US"),
            transport=transport,
            metrics=metrics,
        )

        context.create_container("mycontainer")

        assert "Authorization" not in transport.requests[0].headers

    def test_invalid_key(self, transport, metrics):
        """Test that a bad key fails before anything is sent."""
        context = StorageContext(
            account="account",
            key="not a key!",
            azure_endpoint=get_endpoint("West US"),
            transport=transport,
            metrics=metrics,
        )

        with pytest.raises(InvalidKeyError):
            context.create_container("mycontainer")
        assert transport.requests == []

    def test_retry_resigns(self, metrics):
        """Test that each retry attempt carries a fresh Date and signature."""
        transport = FakeTransport(make_response(503), make_response(201))
        clock = FakeClock()
        times = iter([
            datetime(2006, 1, 2, 15, 4, 5, tzinfo=timezone.utc),
            datetime(2006, 1, 2, 15, 4, 9, tzinfo=timezone.utc),
        ])
        context = StorageContext(
            account="account",
            key=KEY,
            azure_endpoint=get_endpoint("West US"),
            transport=transport,
            retry_policy=RetryPolicy(nb_retries=1, http_status_codes=(503,), delay=4.0),
            metrics=metrics,
            clock=lambda: next(times),
            sleep=clock.sleep,
        )

        context.create_container("mycontainer")

        first, second = transport.requests
        assert first.get_header("Date") == "Mon, 02 Jan 2006 15:04:05 GMT"
        assert second.get_header("Date") == "Mon, 02 Jan 2006 15:04:09 GMT"
        assert first.get_header("Authorization") != second.get_header("Authorization")
        assert clock.sleeps == [4.0]


class TestRequestParams:
    """Test request parameter validation."""

    def test_missing_url(self):
        with pytest.raises(ValidationError):
            RequestParams(method=HTTPMethod.GET, url="", api_version="2012-02-12", expected_status=200)

    def test_missing_version(self):
        with pytest.raises(ValidationError):
            RequestParams(method=HTTPMethod.GET, url="https://x/", api_version="", expected_status=200)

    def test_invalid_method(self):
        with pytest.raises(ValidationError):
            RequestParams(method="PATCH", url="https://x/", api_version="v", expected_status=200)

    def test_invalid_status(self):
        with pytest.raises(ValidationError):
            RequestParams(method=HTTPMethod.GET, url="https://x/", api_version="v", expected_status=0)


class TestPerformRequest:
    """Test response handling."""

    def test_unexpected_status_raises_provider_error(self, context, transport):
        """Test that an error envelope becomes a ProviderError."""
        transport.responses = [make_response(409, error_body("ContainerAlreadyExists", "exists"))]

        with pytest.raises(ProviderError) as exc_info:
            context.create_container("mycontainer")

        assert exc_info.value.status_code == 409
        assert exc_info.value.code == "ContainerAlreadyExists"
        assert "failed to create container mycontainer" in str(exc_info.value)

    def test_unexpected_status_raises_transport_error(self, context, transport):
        transport.responses = [make_response(500)]

        with pytest.raises(TransportError):
            context.create_container("mycontainer")

    def test_deserializer_failure(self, context, transport):
        """Test that a failing deserializer raises DeserializationError."""
        transport.responses = [make_response(200, b"<NotABlockList/>")]

        with pytest.raises(DeserializationError):
            context.get_block_list("c", "f")

    def test_raw_deserializer_errors_wrapped(self, context, transport):
        transport.responses = [make_response(200, b"abc")]

        def parse(body):
            return int(body)

        with pytest.raises(DeserializationError):
            context.perform_request(RequestParams(
                method=HTTPMethod.GET, url="https://x/", api_version="v",
                expected_status=200, result=parse,
            ))


class TestURLs:
    """Test URL construction."""

    def test_account_url(self, context):
        assert context.get_account_url() == "https://account.blob.core.windows.net/"

    def test_china_account_url(self):
        context = StorageContext(account="account", azure_endpoint=get_endpoint("China East"))
        assert context.get_account_url() == "https://account.blob.core.chinacloudapi.cn/"

    def test_no_endpoint(self):
        with pytest.raises(InvalidRequestError):
            StorageContext(account="account").get_account_url()

    def test_file_url_escaped(self, context):
        assert context.get_file_url("my container", "a/b") == (
            "https://account.blob.core.windows.net/my+container/a%2Fb"
        )

    def test_anonymous_file_url(self, context):
        """Test that the SAS URL carries the signed read-access values."""
        url = context.get_anonymous_file_url("container", "file", NOW)

        parsed = urlparse(url)
        query = parse_qs(parsed.query)
        assert parsed.path == "/container/file"
        assert query["sv"] == ["2012-02-12"]
        assert query["se"] == ["2006-01-02T15:04:05Z"]
        assert query["sr"] == ["b"]
        assert query["sp"] == ["r"]
        assert len(query["sig"]) == 1


class TestContainers:
    """Test container operations."""

    def test_delete_missing_container_succeeds(self, context, transport):
        """Test that deleting a missing container is not an error."""
        transport.responses = [make_response(404, error_body("ContainerNotFound", "missing"))]
        context.delete_container("gone")

    def test_delete_container_error(self, context, transport):
        transport.responses = [make_response(403, error_body("AuthenticationFailed", "no"))]
        with pytest.raises(ProviderError):
            context.delete_container("mine")

    def test_delete_container(self, context, transport):
        transport.responses = [make_response(202)]
        context.delete_container("mine")
        request = transport.requests[0]
        assert request.method == HTTPMethod.DELETE
        assert "Content-Length" not in request.headers

    def test_get_container_properties(self, context, transport):
        transport.responses = [make_response(200, headers={
            "Last-Modified": "Mon, 02 Jan 2006 15:04:05 GMT",
            "ETag": '"0x8CB14C3E29B7E82"',
            "x-ms-lease-status": "unlocked",
            "x-ms-lease-state": "available",
        })]

        properties = context.get_container_properties("mine")

        assert properties.etag == '"0x8CB14C3E29B7E82"'
        assert properties.lease_status == "unlocked"
        assert properties.lease_state == "available"
        assert properties.lease_duration == ""

    def test_set_public_acl(self, context, transport):
        transport.responses = [make_response(200)]
        context.set_container_acl("mine", ContainerAccess.BLOB)

        request = transport.requests[0]
        assert request.get_header("x-ms-blob-public-access") == "blob"
        assert request.get_header("x-ms-version") == "2009-09-19"
        assert parse_qs(urlparse(request.url).query) == {"restype": ["container"], "comp": ["acl"]}

    def test_set_private_acl_omits_header(self, context, transport):
        transport.responses = [make_response(200)]
        context.set_container_acl("mine", ContainerAccess.PRIVATE)
        assert "x-ms-blob-public-access" not in transport.requests[0].headers


class TestBlobs:
    """Test blob operations."""

    def test_put_block_blob(self, context, transport):
        context.put_blob("c", "f", BlobType.BLOCK)

        request = transport.requests[0]
        assert request.get_header("x-ms-blob-type") == "BlockBlob"
        assert request.get_header("x-ms-blob-content-length") == ""

    def test_put_page_blob(self, context, transport):
        context.put_blob("c", "f", BlobType.PAGE, size=1024)

        request = transport.requests[0]
        assert request.get_header("x-ms-blob-type") == "PageBlob"
        assert request.get_header("x-ms-blob-content-length") == "1024"

    def test_page_blob_needs_size(self, context, transport):
        with pytest.raises(InvalidRequestError):
            context.put_blob("c", "f", BlobType.PAGE)
        assert transport.requests == []

    def test_page_blob_size_aligned(self, context):
        with pytest.raises(InvalidRequestError):
            context.put_blob("c", "f", BlobType.PAGE, size=1000)

    def test_put_page(self, context, transport):
        context.put_page("c", "f", 512, 1023, b"x" * 512)

        request = transport.requests[0]
        assert request.get_header("x-ms-range") == "bytes=512-1023"
        assert request.get_header("x-ms-page-write") == "update"
        assert request.get_header("Content-Length") == "512"

    @pytest.mark.parametrize("start,end", [(1, 511), (0, 512), (512, 1000)])
    def test_put_page_misaligned(self, context, start, end):
        with pytest.raises(InvalidRequestError):
            context.put_page("c", "f", start, end, b"")

    def test_put_block(self, context, transport):
        context.put_block("c", "f", "block-1", b"data")

        query = parse_qs(urlparse(transport.requests[0].url).query)
        assert query["comp"] == ["block"]
        assert query["blockid"] == [base64.b64encode(b"block-1").decode("ascii")]

    def test_put_block_list(self, context, transport):
        block_list = BlockList()
        block_list.add(BlockListType.LATEST, "block-1")

        context.put_block_list("c", "f", block_list)

        request = transport.requests[0]
        assert request.body == block_list.serialize()
        assert request.get_header("Content-Length") == str(len(request.body))

    def test_get_block_list(self, context, transport):
        transport.responses = [make_response(200, (
            b'<?xml version="1.0" encoding="utf-8"?><BlockList>'
            b'<CommittedBlocks><Block><Name>YQ==</Name><Size>4</Size></Block></CommittedBlocks>'
            b'<UncommittedBlocks/></BlockList>'
        ))]

        result = context.get_block_list("c", "f")

        assert [(b.name, b.size) for b in result.committed_blocks] == [("YQ==", 4)]
        assert result.uncommitted_blocks == []

    def test_get_blob(self, context, transport):
        transport.responses = [make_response(200, b"content")]
        assert context.get_blob("c", "f") == b"content"

    def test_get_blob_error(self, context, transport):
        """Test that a server failure surfaces as a TransportError with its status."""
        transport.responses = [make_response(500)]
        with pytest.raises(TransportError) as exc_info:
            context.get_blob("c", "f")
        assert exc_info.value.status_code == 500
        assert "failed to get blob 'f'" in str(exc_info.value)

    def test_delete_missing_blob_succeeds(self, context, transport):
        transport.responses = [make_response(404)]
        context.delete_blob("c", "gone")

    def test_delete_blob_error(self, context, transport):
        transport.responses = [make_response(500)]
        with pytest.raises(TransportError) as exc_info:
            context.delete_blob("c", "f")
        assert "failed to delete blob f" in str(exc_info.value)


def containers_page(names, next_marker=""):
    entries = "".join(f"<Container><Name>{name}</Name></Container>" for name in names)
    return (
        f"<EnumerationResults><Containers>{entries}</Containers>"
        f"<NextMarker>{next_marker}</NextMarker></EnumerationResults>"
    ).encode("utf-8")


def blobs_page(names, next_marker=""):
    entries = "".join(f"<Blob><Name>{name}</Name></Blob>" for name in names)
    return (
        f'<EnumerationResults ContainerName="c"><Blobs>{entries}</Blobs>'
        f"<NextMarker>{next_marker}</NextMarker></EnumerationResults>"
    ).encode("utf-8")


def query_of(request):
    return parse_qs(urlparse(request.url).query)


class TestListing:
    """Test the listing operations and their pagination."""

    def test_list_containers_request(self, context, transport):
        """Test the signed List Containers request."""
        transport.responses = [make_response(200, containers_page(["a", "b"]))]

        results = context.list_containers()

        assert [c.name for c in results.containers] == ["a", "b"]
        request = transport.requests[0]
        assert request.method == HTTPMethod.GET
        assert request.url == "https://account.blob.core.windows.net/?comp=list"
        assert "Content-Length" not in request.headers
        assert request.get_header("Authorization") == (
            "SharedKey account:VprSW07jEsCQKGdrqFfuO16XiJR+5hKbA+WPd1aDVXk="
        )

    def test_list_blobs_request(self, context, transport):
        """Test that marker and prefix are sent and signed."""
        transport.responses = [make_response(200, blobs_page(["logs/1"]))]

        results = context.list_blobs("mycontainer", marker="2!48", prefix="logs/")

        assert [b.name for b in results.blobs] == ["logs/1"]
        request = transport.requests[0]
        assert request.url.startswith("https://account.blob.core.windows.net/mycontainer?")
        assert query_of(request) == {
            "restype": ["container"],
            "comp": ["list"],
            "marker": ["2!48"],
            "prefix": ["logs/"],
        }
        assert request.get_header("Authorization") == (
            "SharedKey account:umTeA/z926lEDhaqzI+wMqeEqBfJTs9kh/0C86rqHKU="
        )

    def test_first_batch_has_no_marker(self, context, transport):
        transport.responses = [make_response(200, blobs_page([]))]
        context.list_blobs("c")
        assert "marker" not in query_of(transport.requests[0])
        assert "prefix" not in query_of(transport.requests[0])

    def test_list_all_containers(self, context, transport):
        """Test that batches are requested until the marker runs out."""
        transport.responses = [
            make_response(200, containers_page(["a", "b"], next_marker="m2")),
            make_response(200, containers_page(["c"], next_marker="m3")),
            make_response(200, containers_page(["d"])),
        ]

        results = context.list_all_containers()

        assert [c.name for c in results.containers] == ["a", "b", "c", "d"]
        assert results.next_marker == ""
        assert [query_of(r).get("marker") for r in transport.requests] == [None, ["m2"], ["m3"]]

    def test_list_all_blobs_keeps_prefix(self, context, transport):
        transport.responses = [
            make_response(200, blobs_page(["x1"], next_marker="next")),
            make_response(200, blobs_page(["x2"])),
        ]

        results = context.list_all_blobs("c", prefix="x")

        assert [b.name for b in results.blobs] == ["x1", "x2"]
        assert all(query_of(r)["prefix"] == ["x"] for r in transport.requests)
        assert query_of(transport.requests[1])["marker"] == ["next"]

    def test_delete_all_blobs(self, context, transport):
        transport.responses = [
            make_response(200, blobs_page(["f1", "f2"])),
            make_response(202),
            make_response(404),
        ]

        context.delete_all_blobs("c")

        methods = [r.method for r in transport.requests]
        assert methods == [HTTPMethod.GET, HTTPMethod.DELETE, HTTPMethod.DELETE]
        assert transport.requests[2].url == "https://account.blob.core.windows.net/c/f2"

    def test_list_error(self, context, transport):
        transport.responses = [make_response(403, error_body("AuthenticationFailed", "bad"))]

        with pytest.raises(ProviderError) as exc_info:
            context.list_containers()

        assert exc_info.value.status_code == 403
        assert "request for containers list failed" in str(exc_info.value)

    def test_list_bad_payload(self, context, transport):
        transport.responses = [make_response(200, b"<Error />")]
        with pytest.raises(DeserializationError):
            context.list_blobs("c")


class TestFromConfig:
    """Test building a context from configuration."""

    def test_from_config(self, transport, metrics):
        config = AzureKitConfig(
            storage={"account": "acct", "key": KEY, "location": "China North"},
            retry={"nb_retries": 2},
        )

        context = StorageContext.from_config(config, transport=transport, metrics=metrics)

        assert context.account == "acct"
        assert context.key == KEY
        assert context.get_account_url() == "https://acct.blob.core.chinacloudapi.cn/"
        assert context.retry_policy.nb_retries == 2

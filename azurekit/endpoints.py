"""
Azure API endpoints.

Mainland China has its own endpoint; the rest of the world shares one.
Service hosts are derived by prefixing the endpoint's host name, e.g.
``https://account.blob.core.windows.net/``.
"""

from urllib.parse import quote_plus, urlparse, urlunparse

from azurekit.exceptions import InvalidRequestError

GLOBAL_ENDPOINT = "https://core.windows.net/"
CHINA_ENDPOINT = "https://core.chinacloudapi.cn/"


class APIEndpoint(str):
    """Base URL of an Azure region's APIs, e.g. https://core.windows.net/."""

    def management_api(self) -> str:
        """URL of the service management API."""
        return prefix_host("management", self)

    def blob_storage_api(self, account: str) -> str:
        """URL of the blob storage API for an account."""
        return prefix_host(account, prefix_host("blob", self))


def get_endpoint(location: str) -> APIEndpoint:
    """Return the API endpoint serving the given location."""
    if "China" in location:
        return APIEndpoint(CHINA_ENDPOINT)
    return APIEndpoint(GLOBAL_ENDPOINT)


def prefix_host(host: str, original_url: str) -> str:
    """
    Prefix a URL's host name with another label.

    Raises:
        InvalidRequestError: If the URL has no host name
    """
    parsed = urlparse(original_url)
    if not parsed.netloc:
        raise InvalidRequestError(f"no hostname in URL '{original_url}'")
    return urlunparse(parsed._replace(netloc=f"{quote_plus(host)}.{parsed.netloc}"))

"""
SharedKey request signing for Azure storage services.

Builds the canonical string-to-sign for an outgoing request and computes the
``Authorization: SharedKey <account>:<signature>`` header value, following
the 2009-09-19 canonicalization rules used by storage API version
2012-02-12.

Reference: https://docs.microsoft.com/en-us/rest/api/storageservices/authorize-with-shared-key

Author: AzureKit Team
Date: 2026-01-14
"""

import base64
import binascii
import hashlib
import hmac
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional
from urllib.parse import parse_qs, unquote, urlparse

from azurekit.auth.exceptions import InvalidKeyError

logger = logging.getLogger(__name__)


# Standard headers included in the string to sign, in wire order.
HEADERS_TO_SIGN = (
    "Content-Encoding",
    "Content-Language",
    "Content-Length",
    "Content-MD5",
    "Content-Type",
    "Date",
    "If-Modified-Since",
    "If-Match",
    "If-None-Match",
    "If-Unmodified-Since",
    "Range",
)

CANONICALIZED_HEADER_PREFIX = "x-ms-"


@dataclass
class SignableRequest:
    """
    The parts of an HTTP request that take part in a SharedKey signature.

    Header names are matched case-insensitively; each header and query
    parameter maps to a list of values.
    """

    method: str
    path: str
    headers: Dict[str, List[str]] = field(default_factory=dict)
    query: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def from_url(
        cls,
        method: str,
        url: str,
        headers: Optional[Mapping[str, Iterable[str]]] = None
    ) -> "SignableRequest":
        """
        Build a SignableRequest from a full URL.

        Args:
            method: HTTP method
            url: Full request URL, query string included
            headers: Header name -> values

        Returns:
            SignableRequest with decoded path and query parameters
        """
        parsed = urlparse(url)
        return cls(
            method=method,
            path=unquote(parsed.path),
            headers={name: list(values) for name, values in (headers or {}).items()},
            query=parse_qs(parsed.query, keep_blank_values=True),
        )

    def get_header(self, name: str) -> str:
        """Return the first value of a header, or an empty string."""
        name_lower = name.lower()
        for key, values in self.headers.items():
            if key.lower() == name_lower and values:
                return values[0]
        return ""


def sign(account_key: str, signable: str) -> str:
    """
    Compute a base64 HMAC-SHA256 signature.

    Signature = Base64(HMAC-SHA256(UTF8(signable), Base64Decode(account_key)))

    Args:
        account_key: Base64-encoded account key
        signable: String to sign

    Returns:
        Base64-encoded signature

    Raises:
        InvalidKeyError: If the account key is not valid base64
    """
    try:
        key_bytes = base64.b64decode(account_key, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidKeyError(str(exc)) from exc

    digest = hmac.new(key_bytes, signable.encode("utf-8"), hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def to_lower_keys(values: Mapping[str, Iterable[str]]) -> Dict[str, List[str]]:
    """
    Lower-case all keys, merging values of keys that differ only by case.

    The values of each key are sorted.
    """
    merged: Dict[str, List[str]] = {}
    for name, name_values in values.items():
        merged.setdefault(name.lower(), []).extend(name_values)
    for name_values in merged.values():
        name_values.sort()
    return merged


def encode_params(values: Mapping[str, Iterable[str]]) -> str:
    """
    Encode query parameters for the canonicalized resource.

    Names are lower-cased and sorted; each parameter is rendered as
    ``name:value,value`` and parameters are joined with newlines.
    """
    lowered = to_lower_keys(values)
    return "\n".join(
        f"{name}:{','.join(lowered[name])}" for name in sorted(lowered)
    )


def compose_headers(request: SignableRequest) -> str:
    """Render the standard headers block, one value per line."""
    return "".join(request.get_header(name) + "\n" for name in HEADERS_TO_SIGN)


def compose_canonicalized_headers(request: SignableRequest) -> str:
    """
    Render the x-ms-* headers block.

    Rules:
    1. Keep headers whose lower-cased name starts with "x-ms-"
    2. Lower-case names; names differing only by case are merged
    3. Sort by name
    4. Render "name:value,value\\n" keeping the values' casing and order
    """
    ms_headers: Dict[str, List[str]] = {}
    for name, values in request.headers.items():
        name_lower = name.lower()
        if name_lower.startswith(CANONICALIZED_HEADER_PREFIX):
            ms_headers.setdefault(name_lower, []).extend(values)

    return "".join(
        f"{name}:{','.join(ms_headers[name])}\n" for name in sorted(ms_headers)
    )


def compose_canonicalized_resource(request: SignableRequest, account_name: str) -> str:
    """
    Render the canonicalized resource.

    Format:
        /account-name/resource-path
        param1:value1
        param2:value2,value3
    """
    path = request.path
    if not path.startswith("/"):
        path = "/" + path

    resource = f"/{account_name}{path}"
    params = encode_params(request.query)
    if params:
        resource += "\n" + params
    return resource


def compose_string_to_sign(request: SignableRequest, account_name: str) -> str:
    """
    Build the string that gets HMAC signed.

    Format:
        VERB\\n
        Content-Encoding\\n
        ... (the rest of HEADERS_TO_SIGN, one per line)
        Range\\n
        CanonicalizedHeaders
        CanonicalizedResource
    """
    return (
        f"{request.method}\n"
        f"{compose_headers(request)}"
        f"{compose_canonicalized_headers(request)}"
        f"{compose_canonicalized_resource(request, account_name)}"
    )


def compose_auth_header(request: SignableRequest, account_name: str, account_key: str) -> str:
    """
    Calculate the value of the Authorization header.

    Args:
        request: Request to sign
        account_name: Storage account name
        account_key: Base64-encoded account key

    Returns:
        "SharedKey <account>:<signature>"

    Raises:
        InvalidKeyError: If the account key is not valid base64
    """
    signable = compose_string_to_sign(request, account_name)
    signature = sign(account_key, signable)
    logger.debug(f"Signed {request.method} {request.path} for account {account_name}")
    return f"SharedKey {account_name}:{signature}"

"""
AzureKit Authentication Module.

SharedKey request signing and Shared Access Signature generation.

Author: AzureKit Team
Date: 2026-01-14
"""

from azurekit.auth.exceptions import (
    SigningError,
    InvalidKeyError,
)
from azurekit.auth.sharedkey import (
    HEADERS_TO_SIGN,
    SignableRequest,
    sign,
    compose_string_to_sign,
    compose_auth_header,
)
from azurekit.auth.shared_signature import (
    SharedSignatureParams,
    get_read_blob_access_values,
)

__all__ = [
    # Exceptions
    "SigningError",
    "InvalidKeyError",
    # SharedKey
    "HEADERS_TO_SIGN",
    "SignableRequest",
    "sign",
    "compose_string_to_sign",
    "compose_auth_header",
    # SAS
    "SharedSignatureParams",
    "get_read_blob_access_values",
]

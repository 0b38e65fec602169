"""SAS (Shared Access Signature) generation for Azure Storage objects.

Builds the query parameters that delegate time-limited access to a single
storage object without exposing the account key.

Reference: http://msdn.microsoft.com/en-us/library/windowsazure/dn140255.aspx
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict

from azurekit.auth.sharedkey import sign

SAS_VERSION = "2012-02-12"


class SASPermission(str, Enum):
    """SAS permission flags."""

    READ = "r"
    WRITE = "w"
    DELETE = "d"
    LIST = "l"


class SASResource(str, Enum):
    """Signed resource type codes."""

    BLOB = "b"
    CONTAINER = "c"


@dataclass(frozen=True)
class SharedSignatureParams:
    """All the inputs of a service SAS for one storage object."""

    permission: str
    signed_start: str
    signed_expiry: str
    path: str
    account_name: str
    signed_identifier: str
    signed_version: str
    signed_resource: str
    account_key: str

    def compose_shared_signature(self) -> str:
        """Sign the six-line string for this SAS.

        Format:
        signedpermissions\n
        signedstart\n
        signedexpiry\n
        canonicalizedresource\n
        signedidentifier\n
        signedversion

        Returns:
            Base64-encoded signature

        Raises:
            InvalidKeyError: If the account key is not valid base64
        """
        canonicalized_resource = f"/{self.account_name}{self.path}"
        string_to_sign = "\n".join([
            self.permission,
            self.signed_start,
            self.signed_expiry,
            canonicalized_resource,
            self.signed_identifier,
            self.signed_version,
        ])
        return sign(self.account_key, string_to_sign)

    def compose_access_query_values(self) -> Dict[str, str]:
        """Return the sv/se/sr/sp/sig query values of the SAS URL.

        Values are not URL-encoded; pass them to ``urlencode``.
        """
        signature = self.compose_shared_signature()
        return {
            "sv": self.signed_version,
            "se": self.signed_expiry,
            "sr": self.signed_resource,
            "sp": self.permission,
            "sig": signature,
        }


def format_expiry(expires: datetime) -> str:
    """Format a timestamp as RFC3339 in UTC, e.g. 2015-02-12T10:00:00Z.

    Naive datetimes are taken to be UTC.
    """
    if expires.tzinfo is None:
        expires = expires.replace(tzinfo=timezone.utc)
    return expires.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def get_read_blob_access_values(
    container: str,
    filename: str,
    account_name: str,
    account_key: str,
    expires: datetime,
) -> Dict[str, str]:
    """Build SAS query values granting read access to one blob.

    Args:
        container: Container name
        filename: Blob name inside the container
        account_name: Storage account name
        account_key: Base64-encoded account key
        expires: When the access expires

    Returns:
        Query values (sv, se, sr, sp, sig)
    """
    params = SharedSignatureParams(
        permission=SASPermission.READ.value,
        signed_start="",
        signed_expiry=format_expiry(expires),
        path=f"/{container}/{filename}",
        account_name=account_name,
        signed_identifier="",
        signed_version=SAS_VERSION,
        signed_resource=SASResource.BLOB.value,
        account_key=account_key,
    )
    return params.compose_access_query_values()

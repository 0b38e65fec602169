"""
Signing exceptions for AzureKit.

Author: AzureKit Team
Date: 2026-01-14
"""

from azurekit.exceptions import AzureKitError


class SigningError(AzureKitError):
    """Base exception for request signing errors."""

    error_code = "SigningFailed"


class InvalidKeyError(SigningError):
    """Raised when an account key is not valid base64."""

    error_code = "InvalidAccountKey"

    def __init__(self, reason: str):
        super().__init__(f"invalid account key: {reason}")
        self.reason = reason

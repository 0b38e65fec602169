"""
AzureKit exception root.

Every error raised by the library itself derives from AzureKitError. Errors
coming from the network layer (``requests`` exceptions) are propagated
unchanged once the retry policy gives up.
"""

from typing import Any, Dict, Optional


class AzureKitError(Exception):
    """
    Base exception for all AzureKit errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        details: Additional context
    """

    error_code: str = "AzureKitError"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.error_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary format."""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details
            }
        }


class InvalidRequestError(AzureKitError):
    """Raised when request parameters fail validation before sending."""

    error_code = "InvalidRequest"


class DeserializationError(AzureKitError):
    """Raised when a successful response body cannot be deserialized."""

    error_code = "DeserializationFailed"

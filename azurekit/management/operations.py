"""
Asynchronous operation status records.

Reference: http://msdn.microsoft.com/en-us/library/windowsazure/ee460783.aspx
"""

from enum import Enum
from xml.etree import ElementTree as ET

from pydantic import BaseModel, ConfigDict, ValidationError

from azurekit.exceptions import AzureKitError
from azurekit.utils import find_child_text, local_name


class OperationStatus(str, Enum):
    """Status values of an asynchronous operation."""
    IN_PROGRESS = "InProgress"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"


TERMINAL_STATUSES = frozenset({OperationStatus.SUCCEEDED.value, OperationStatus.FAILED.value})


class OperationDecodeError(AzureKitError):
    """Raised when an operation status payload cannot be parsed."""

    error_code = "OperationDecodeFailed"


class Operation(BaseModel):
    """
    The status of an asynchronous operation, as reported by the server.

    Parsed fresh from each status response and never mutated. ``status``
    is kept as the raw string so that unknown values are representable;
    they are treated as not terminal.
    """

    model_config = ConfigDict(frozen=True)

    id: str = ""
    status: str = ""
    http_status_code: int = 0
    error_code: str = ""
    error_message: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def succeeded(self) -> bool:
        return self.status == OperationStatus.SUCCEEDED.value

    @property
    def failed(self) -> bool:
        return self.status == OperationStatus.FAILED.value

    @classmethod
    def deserialize(cls, data: bytes) -> "Operation":
        """
        Parse an ``Operation`` XML document.

        Raises:
            OperationDecodeError: If the body is not a valid Operation document
        """
        try:
            root = ET.fromstring(data)
        except ET.ParseError as exc:
            raise OperationDecodeError(f"invalid operation XML: {exc}") from exc
        if local_name(root.tag) != "Operation":
            raise OperationDecodeError(f"expected Operation, got {local_name(root.tag)}")

        try:
            return cls(
                id=find_child_text(root, "ID"),
                status=find_child_text(root, "Status"),
                http_status_code=find_child_text(root, "HttpStatusCode") or 0,
                error_code=find_child_text(root, "Error", "Code"),
                error_message=find_child_text(root, "Error", "Message"),
            )
        except ValidationError as exc:
            raise OperationDecodeError(f"invalid operation field: {exc}") from exc

"""
AzureKit Service Management Client.

Author: AzureKit Team
Date: 2026-01-27
"""

from .api import ManagementAPI, DiskDeletePoller
from .operations import Operation, OperationStatus, OperationDecodeError
from .poller import Poller, OperationPoller, perform_polling, perform_operation_polling
from .session import ManagementSession, CertificateError

__all__ = [
    "ManagementAPI",
    "DiskDeletePoller",
    "Operation",
    "OperationStatus",
    "OperationDecodeError",
    "Poller",
    "OperationPoller",
    "perform_polling",
    "perform_operation_polling",
    "ManagementSession",
    "CertificateError",
]

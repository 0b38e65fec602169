"""
AzureKit: client library for the Azure blob storage and service management APIs.

Signs and sends REST requests, and turns asynchronous management operations
into blocking calls by polling their status.
"""

__version__ = "0.1.0"

from .storage.context import StorageContext
from .management.api import ManagementAPI

__all__ = ["StorageContext", "ManagementAPI", "__version__"]

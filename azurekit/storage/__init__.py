"""
AzureKit Blob Storage Client.

Author: AzureKit Team
Date: 2026-01-22
"""

from .context import StorageContext, RequestParams, StorageResponse
from .models import (
    Blob,
    BlobEnumerationResults,
    BlobType,
    Container,
    ContainerAccess,
    ContainerEnumerationResults,
    ContainerProperties,
    BlockListType,
    BlockList,
    Block,
    GetBlockList,
)

__all__ = [
    "StorageContext",
    "RequestParams",
    "StorageResponse",
    "Blob",
    "BlobEnumerationResults",
    "BlobType",
    "Container",
    "ContainerAccess",
    "ContainerEnumerationResults",
    "ContainerProperties",
    "BlockListType",
    "BlockList",
    "Block",
    "GetBlockList",
]

"""
Blob Storage Models

Pydantic models for the storage payloads the client reads and writes:
container properties, block lists, blob types and listing results.

Author: AzureKit Team
Date: 2026-01-22
"""

import base64
from enum import Enum
from typing import Dict, List, Optional
from xml.etree import ElementTree as ET

from pydantic import BaseModel, ConfigDict, Field

from azurekit.exceptions import DeserializationError
from azurekit.utils import find_child, find_child_text, local_name


XML_DECLARATION = '<?xml version="1.0" encoding="utf-8"?>'


class BlobType(str, Enum):
    """Kinds of blob that can be created."""
    BLOCK = "block"
    PAGE = "page"

    @property
    def header_value(self) -> str:
        """Value of the x-ms-blob-type header."""
        return "BlockBlob" if self is BlobType.BLOCK else "PageBlob"


class ContainerAccess(str, Enum):
    """Container public access levels."""
    PRIVATE = "private"
    BLOB = "blob"
    CONTAINER = "container"


class BlockListType(str, Enum):
    """Where a block is taken from when committing a block list."""
    UNCOMMITTED = "Uncommitted"
    COMMITTED = "Committed"
    LATEST = "Latest"


class ContainerProperties(BaseModel):
    """Container system properties, read from response headers."""

    model_config = ConfigDict(frozen=True)

    last_modified: str = ""
    etag: str = ""
    lease_status: str = ""
    lease_state: str = ""
    lease_duration: str = ""


class BlockListItem(BaseModel):
    """One entry of a Put Block List payload."""

    model_config = ConfigDict(frozen=True)

    block_type: BlockListType
    block_id: str = Field(..., description="Base64-encoded block ID")


class BlockList(BaseModel):
    """Payload for the Put Block List operation."""

    items: List[BlockListItem] = Field(default_factory=list)

    def add(self, block_type: BlockListType, block_id: str) -> None:
        """Add a block, base64-encoding its raw ID."""
        encoded = base64.b64encode(block_id.encode("utf-8")).decode("ascii")
        self.items.append(BlockListItem(block_type=block_type, block_id=encoded))

    def serialize(self) -> bytes:
        """Render the BlockList XML document."""
        root = ET.Element("BlockList")
        for item in self.items:
            ET.SubElement(root, item.block_type.value).text = item.block_id
        return (XML_DECLARATION + ET.tostring(root, encoding="unicode")).encode("utf-8")


class Block(BaseModel):
    """A block reported by Get Block List."""

    model_config = ConfigDict(frozen=True)

    name: str
    size: int


class GetBlockList(BaseModel):
    """Result of the Get Block List operation."""

    model_config = ConfigDict(frozen=True)

    committed_blocks: List[Block] = Field(default_factory=list)
    uncommitted_blocks: List[Block] = Field(default_factory=list)

    @classmethod
    def deserialize(cls, data: bytes) -> "GetBlockList":
        """
        Parse a Get Block List response body.

        Raises:
            DeserializationError: If the body is not a BlockList document
        """
        root = _parse_root(data, "BlockList")
        return cls(
            committed_blocks=_parse_blocks(find_child(root, "CommittedBlocks")),
            uncommitted_blocks=_parse_blocks(find_child(root, "UncommittedBlocks")),
        )


def _parse_blocks(parent: Optional[ET.Element]) -> List[Block]:
    if parent is None:
        return []
    try:
        return [
            Block(name=find_child_text(child, "Name"), size=int(find_child_text(child, "Size") or 0))
            for child in parent
            if local_name(child.tag) == "Block"
        ]
    except ValueError as exc:
        raise DeserializationError(f"invalid block size: {exc}") from exc


def _parse_root(data: bytes, expected: str) -> ET.Element:
    try:
        root = ET.fromstring(data)
    except ET.ParseError as exc:
        raise DeserializationError(f"invalid {expected} XML: {exc}") from exc
    if local_name(root.tag) != expected:
        raise DeserializationError(f"expected {expected}, got {local_name(root.tag)}")
    return root


def _parse_metadata(parent: ET.Element) -> Dict[str, str]:
    metadata = find_child(parent, "Metadata")
    if metadata is None:
        return {}
    return {local_name(child.tag): (child.text or "").strip() for child in metadata}


def _children(parent: ET.Element, *path: str) -> List[ET.Element]:
    """Children matching the last name of ``path``, under the others."""
    container = find_child(parent, *path[:-1])
    if container is None:
        return []
    return [child for child in container if local_name(child.tag) == path[-1]]


class Container(BaseModel):
    """A container entry of a List Containers result."""

    model_config = ConfigDict(frozen=True)

    name: str
    url: str = ""
    properties: ContainerProperties = Field(default_factory=ContainerProperties)
    metadata: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_element(cls, element: ET.Element) -> "Container":
        return cls(
            name=find_child_text(element, "Name"),
            url=find_child_text(element, "Url") or find_child_text(element, "URL"),
            properties=ContainerProperties(
                last_modified=find_child_text(element, "Properties", "Last-Modified"),
                etag=find_child_text(element, "Properties", "Etag"),
                lease_status=find_child_text(element, "Properties", "LeaseStatus"),
                lease_state=find_child_text(element, "Properties", "LeaseState"),
                lease_duration=find_child_text(element, "Properties", "LeaseDuration"),
            ),
            metadata=_parse_metadata(element),
        )


class ContainerEnumerationResults(BaseModel):
    """
    One batch of a List Containers result.

    A non-empty ``next_marker`` means more containers are available; pass it
    as the marker of the next request.

    Reference: http://msdn.microsoft.com/en-us/library/windowsazure/dd179352.aspx
    """

    model_config = ConfigDict(frozen=True)

    prefix: str = ""
    marker: str = ""
    max_results: str = ""
    containers: List[Container] = Field(default_factory=list)
    next_marker: str = ""

    @classmethod
    def deserialize(cls, data: bytes) -> "ContainerEnumerationResults":
        """
        Parse a List Containers response body.

        Raises:
            DeserializationError: If the body is not an EnumerationResults document
        """
        root = _parse_root(data, "EnumerationResults")
        return cls(
            prefix=find_child_text(root, "Prefix"),
            marker=find_child_text(root, "Marker"),
            max_results=find_child_text(root, "MaxResults"),
            containers=[Container.from_element(e) for e in _children(root, "Containers", "Container")],
            next_marker=find_child_text(root, "NextMarker"),
        )


class Blob(BaseModel):
    """A blob entry of a List Blobs result."""

    model_config = ConfigDict(frozen=True)

    name: str
    snapshot: str = ""
    url: str = ""
    last_modified: str = ""
    etag: str = ""
    content_length: str = ""
    content_type: str = ""
    blob_sequence_number: str = ""
    blob_type: str = ""
    lease_status: str = ""
    lease_state: str = ""
    lease_duration: str = ""
    copy_id: str = ""
    copy_status: str = ""
    copy_source: str = ""
    copy_progress: str = ""
    copy_completion_time: str = ""
    copy_status_description: str = ""
    metadata: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_element(cls, element: ET.Element) -> "Blob":
        def prop(name: str) -> str:
            return find_child_text(element, "Properties", name)

        return cls(
            name=find_child_text(element, "Name"),
            snapshot=find_child_text(element, "Snapshot"),
            url=find_child_text(element, "Url"),
            last_modified=prop("Last-Modified"),
            etag=prop("Etag"),
            content_length=prop("Content-Length"),
            content_type=prop("Content-Type"),
            blob_sequence_number=prop("x-ms-blob-sequence-number"),
            blob_type=prop("BlobType"),
            lease_status=prop("LeaseStatus"),
            lease_state=prop("LeaseState"),
            lease_duration=prop("LeaseDuration"),
            copy_id=prop("CopyId"),
            copy_status=prop("CopyStatus"),
            copy_source=prop("CopySource"),
            copy_progress=prop("CopyProgress"),
            copy_completion_time=prop("CopyCompletionTime"),
            copy_status_description=prop("CopyStatusDescription"),
            metadata=_parse_metadata(element),
        )


class BlobEnumerationResults(BaseModel):
    """
    One batch of a List Blobs result.

    Reference: http://msdn.microsoft.com/en-us/library/windowsazure/dd135734.aspx
    """

    model_config = ConfigDict(frozen=True)

    container_name: str = ""
    prefix: str = ""
    marker: str = ""
    max_results: str = ""
    delimiter: str = ""
    blobs: List[Blob] = Field(default_factory=list)
    blob_prefixes: List[str] = Field(default_factory=list)
    next_marker: str = ""

    @classmethod
    def deserialize(cls, data: bytes) -> "BlobEnumerationResults":
        """
        Parse a List Blobs response body.

        Raises:
            DeserializationError: If the body is not an EnumerationResults document
        """
        root = _parse_root(data, "EnumerationResults")
        return cls(
            container_name=root.get("ContainerName", ""),
            prefix=find_child_text(root, "Prefix"),
            marker=find_child_text(root, "Marker"),
            max_results=find_child_text(root, "MaxResults"),
            delimiter=find_child_text(root, "Delimiter"),
            blobs=[Blob.from_element(e) for e in _children(root, "Blobs", "Blob")],
            blob_prefixes=[
                find_child_text(e, "Name") for e in _children(root, "Blobs", "BlobPrefix")
            ],
            next_marker=find_child_text(root, "NextMarker"),
        )

"""
Small URL and XML helpers shared by the storage and management clients.
"""

from typing import Optional
from urllib.parse import parse_qsl, quote_plus, urlencode, urlparse, urlunparse
from xml.etree import ElementTree as ET

from azurekit.exceptions import InvalidRequestError


def check_path_components(*components: str) -> None:
    """
    Reject path components that would change the meaning of a URL.

    Raises:
        InvalidRequestError: If a component contains URI special characters
            or is ".."
    """
    for component in components:
        if component != quote_plus(component):
            raise InvalidRequestError(f"'{component}' contains URI special characters")
        if component == "..":
            raise InvalidRequestError("'..' is not allowed")


def add_url_query_params(original_url: str, *params: str) -> str:
    """
    Append key/value pairs to a URL's query string.

    Args:
        original_url: URL to extend
        *params: Alternating keys and values

    Returns:
        URL with the extra query parameters
    """
    if len(params) % 2 != 0:
        raise InvalidRequestError(
            f"got {len(params)} parameter argument(s), instead of matched key/value pairs"
        )
    parsed = urlparse(original_url)
    query = parse_qsl(parsed.query, keep_blank_values=True)
    query.extend(zip(params[0::2], params[1::2]))
    return urlunparse(parsed._replace(query=urlencode(query)))


def local_name(tag: str) -> str:
    """Strip the "{namespace}" prefix ElementTree puts on tag names."""
    if tag.startswith("{"):
        return tag.split("}", 1)[1]
    return tag


def find_child(element: ET.Element, *path: str) -> Optional[ET.Element]:
    """Follow child tag names, ignoring XML namespaces."""
    current = element
    for name in path:
        current = next(
            (child for child in current if local_name(child.tag) == name),
            None
        )
        if current is None:
            return None
    return current


def find_child_text(element: ET.Element, *path: str) -> str:
    """Return the text of a nested child, or an empty string."""
    child = find_child(element, *path)
    if child is None or child.text is None:
        return ""
    return child.text.strip()

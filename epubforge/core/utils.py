from __future__ import annotations

"""Simple reusable helper functions.

These helpers are side-effect-free and contain no disk I/O; they can be used
across all layers of the package.
"""

import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Optional

from lxml import etree as ET

from epubforge.core.exceptions import EncodingFailedError

__all__ = [
    "ensure_extension",
    "normalize_name",
    "make_xml_id",
    "generate_book_uuid",
    "format_date",
    "format_timestamp",
    "serialize_xml",
    "set_text",
    "set_attr",
]

logger = logging.getLogger(__name__)

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'


def ensure_extension(filename: str, extension: str = ".xhtml") -> str:
    """Append *extension* to *filename* unless it already ends with it."""
    if filename.lower().endswith(extension.lower()):
        return filename
    return f"{filename}{extension}"


def normalize_name(name: str) -> str:
    """Reduce a caller-supplied internal name to a bare, trimmed file name."""
    name = (name or "").strip().replace("\\", "/")
    return name.rsplit("/", 1)[-1].strip()


def make_xml_id(prefix: str, name: str) -> str:
    """Build an XML ``ID``-safe token from *prefix* and a file *name*.

    >>> make_xml_id("image", "my cover.jpg")
    'image-my_cover.jpg'
    """
    token = re.sub(r"[^A-Za-z0-9_.\-]", "_", name)
    return f"{prefix}-{token}" if prefix else token


def generate_book_uuid() -> str:
    """Return a ``urn:uuid:`` identifier for a new book."""
    return f"urn:uuid:{uuid.uuid4()}"


def format_date(value: datetime) -> str:
    return value.strftime("%Y-%m-%d")


def format_timestamp(value: datetime) -> str:
    """Format *value* as the UTC ``CCYY-MM-DDThh:mm:ssZ`` form EPUB 3 expects."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


# ---------------------------------------------------------------------------
# XML convenience wrappers
# ---------------------------------------------------------------------------


def serialize_xml(element: ET._Element, doctype: Optional[str] = None, *,
                  pretty: bool = True, operation: str = "encode") -> str:
    """Return *element* as a complete document string with XML declaration.

    Parameters
    ----------
    element
        Root ``lxml`` element to serialise.
    doctype
        Full doctype string, e.g. ``'<!DOCTYPE html>'``; omitted when ``None``.
    pretty
        When *True* (default) lxml pretty-prints the output for readability.

    Raises
    ------
    EncodingFailedError
        When lxml refuses to serialise the tree.
    """
    try:
        body = ET.tostring(element, pretty_print=pretty, encoding="unicode", doctype=doctype)
    except (ValueError, TypeError, ET.LxmlError) as exc:
        logger.error("Serialization failed for <%s>: %s", getattr(element, "tag", "?"), exc)
        raise EncodingFailedError(str(exc), operation=operation, cause=exc) from exc
    return f"{XML_DECLARATION}\n{body}"


def set_text(element: ET._Element, text: str, *, operation: str = "encode") -> None:
    """Assign ``element.text``, turning lxml's rejection of control characters into ``EncodingFailedError``."""
    try:
        element.text = text
    except ValueError as exc:
        raise EncodingFailedError(f"Invalid characters in text {text!r}", operation=operation, cause=exc) from exc


def set_attr(element: ET._Element, name: str, value: str, *, operation: str = "encode") -> None:
    try:
        element.set(name, value)
    except ValueError as exc:
        raise EncodingFailedError(f"Invalid value for attribute {name}: {value!r}", operation=operation,
                                  cause=exc) from exc

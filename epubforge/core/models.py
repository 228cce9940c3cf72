from __future__ import annotations

"""Shared data structures used across the epubforge core.

This module is intentionally free of I/O so that the contained objects can be
reused in any context (unit-tests, scripts, services).
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

__all__ = [
    "EpubVersion",
    "AssetClass",
    "CONTENT_FOLDER_NAME",
    "TEXT_FOLDER_NAME",
    "META_INF_FOLDER_NAME",
    "PACKAGE_FILE_NAME",
    "NCX_FILE_NAME",
    "NAV_FILE_NAME",
    "CoverSlot",
    "Identifier",
    "MetaItem",
    "PackageMetadata",
    "ManifestItem",
    "SpineItemRef",
    "GuideReference",
    "BindingItem",
]

CONTENT_FOLDER_NAME = "OEBPS"
TEXT_FOLDER_NAME = "text"
META_INF_FOLDER_NAME = "META-INF"
PACKAGE_FILE_NAME = "content.opf"
NCX_FILE_NAME = "toc.ncx"
NAV_FILE_NAME = "nav.xhtml"


class EpubVersion(Enum):
    """Format version; selects the schema dialect of every encoder."""

    V20 = "2.0"
    V30 = "3.0"


class AssetClass(Enum):
    """Resource classes kept by the registry, valued by their folder name."""

    IMAGE = "images"
    FONT = "fonts"
    VIDEO = "videos"
    AUDIO = "audios"
    STYLESHEET = "css"

    @property
    def folder(self) -> str:
        return self.value

    @property
    def prefix(self) -> str:
        """Stem used for synthesized names, e.g. ``image_3.png``."""
        return self.name.lower()


@dataclass
class CoverSlot:
    """The active cover binding.

    Attributes
    ----------
    image
        Internal name of the cover image in the image class.
    filename
        File name of the generated cover section.
    stylesheet
        Internal name of the cover stylesheet, if one was supplied.
    """

    image: str
    filename: str
    stylesheet: Optional[str] = None


@dataclass
class Identifier:
    """Unique book identifier (``dc:identifier``)."""

    value: str
    id: str = "BookId"
    scheme: str = ""


@dataclass
class MetaItem:
    """Free-form package metadata entry.

    Dialect 2.0 writes ``name``/``content``; dialect 3.0 writes
    ``property``/``value`` (falling back to ``name``/``content`` when only
    those are set).
    """

    name: str = ""
    content: str = ""
    property: str = ""
    value: str = ""
    refines: str = ""
    scheme: str = ""
    id: str = ""


@dataclass
class PackageMetadata:
    """Flat bibliographic record of the book."""

    title: str = ""
    language: str = ""
    creators: List[str] = field(default_factory=list)
    subjects: List[str] = field(default_factory=list)
    contributors: List[str] = field(default_factory=list)
    rights: List[str] = field(default_factory=list)
    description: Optional[str] = None
    category: Optional[str] = None
    publisher: Optional[str] = None
    format: Optional[str] = None
    identifier: Optional[Identifier] = None
    source: Optional[str] = None
    relation: Optional[str] = None
    coverage: Optional[str] = None
    date_published: Optional[datetime] = None
    date_modified: Optional[datetime] = None
    generator: Optional[str] = None
    meta: List[MetaItem] = field(default_factory=list)


@dataclass
class ManifestItem:
    id: str
    href: str
    media_type: str
    properties: str = ""


@dataclass
class SpineItemRef:
    idref: str
    linear: bool = True
    properties: str = ""


@dataclass
class GuideReference:
    type: str
    title: str
    href: str


@dataclass
class BindingItem:
    media_type: str
    handler: str

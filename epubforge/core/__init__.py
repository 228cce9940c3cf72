"""Core book model: resources, sections, navigation, package document and output."""

from .builder import EpubBuilder
from .models import AssetClass, CoverSlot, EpubVersion, PackageMetadata
from .opf import Package
from .resources import ResourceRegistry
from .sections import Section, SectionTree
from .toc import TocElement, TocNav
from .xhtml import XHtmlDocument

__all__ = [
    "EpubBuilder",
    "AssetClass",
    "CoverSlot",
    "EpubVersion",
    "PackageMetadata",
    "Package",
    "ResourceRegistry",
    "Section",
    "SectionTree",
    "TocElement",
    "TocNav",
    "XHtmlDocument",
]

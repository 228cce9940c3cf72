"""Top-level package of epubforge, an in-memory EPUB 2.0/3.0 assembler.

Front-ends (scripts, services) should only depend on the public API exposed
here rather than importing internal modules directly.
"""

from .core.builder import EpubBuilder
from .core.exceptions import (
    EncodingFailedError,
    EpubError,
    FilenameExistsError,
    InvalidMetadataError,
    IOFailureError,
    MediaTypeUnknownError,
    NameAlreadyUsedError,
    ParentNotFoundError,
    SourceNotFoundError,
)
from .core.models import AssetClass, EpubVersion

__all__: list[str] = [
    "EpubBuilder",
    "EpubVersion",
    "AssetClass",
    "EpubError",
    "SourceNotFoundError",
    "NameAlreadyUsedError",
    "FilenameExistsError",
    "ParentNotFoundError",
    "MediaTypeUnknownError",
    "EncodingFailedError",
    "IOFailureError",
    "InvalidMetadataError",
]

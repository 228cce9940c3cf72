from __future__ import annotations

"""Error hierarchy raised by the book assembly core.

Every public operation either completes or raises one of these. Each error
carries the operation and the identifier (file name, internal name, source
path) that failed so callers can correct the input and resubmit.
"""

from typing import Optional

__all__ = [
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


class EpubError(Exception):
    """Base exception for all book assembly errors."""

    def __init__(self, message: str, identifier: Optional[str] = None,
                 operation: Optional[str] = None,
                 cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.identifier = identifier
        self.operation = operation
        self.cause = cause

    def __str__(self) -> str:
        prefix = ""
        if self.operation:
            prefix += f"[{self.operation}] "
        if self.identifier:
            prefix += f"'{self.identifier}': "
        return f"{prefix}{super().__str__()}"


class SourceNotFoundError(EpubError):
    """Raised when a referenced external asset does not exist."""
    pass


class NameAlreadyUsedError(EpubError):
    """Raised when an internal resource name is taken by another source."""
    pass


class FilenameExistsError(NameAlreadyUsedError):
    """Raised when a section file name is already registered in the tree."""
    pass


class ParentNotFoundError(EpubError):
    """Raised when a section is attached to a file name the tree does not know."""
    pass


class MediaTypeUnknownError(EpubError):
    """Raised when an asset's media type cannot be resolved or is not allowed."""
    pass


class EncodingFailedError(EpubError):
    """Raised when a document cannot be serialized.

    The underlying lxml or value error is available as ``cause`` and is also
    chained as ``__cause__``.
    """
    pass


class IOFailureError(EpubError):
    """Raised when writing the output folder fails."""

    def __init__(self, message: str, identifier: Optional[str] = None,
                 operation: Optional[str] = None,
                 cause: Optional[BaseException] = None) -> None:
        super().__init__(message, identifier, operation or "write", cause)


class InvalidMetadataError(EpubError):
    """Raised when a supplied value is not usable for the package (e.g. an unknown asset class)."""
    pass

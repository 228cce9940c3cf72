from __future__ import annotations

"""Registry of external assets bundled into the book.

Each asset class (images, fonts, videos, audios, stylesheets) keeps its own
insertion-ordered map of internal name -> source path. Internal names become
file names under ``OEBPS/<class-folder>/`` and are referenced from section
documents as ``../<class-folder>/<name>``.

Naming rules
------------
- An explicit name is taken as-is (after trimming to a bare file name). It is
  an error if another source already owns it; registering the same source
  under the same name again simply returns the existing path.
- Without a name the source's base name is used. When that is too long or
  already taken, ``<prefix>_<N>.<ext>`` is synthesized. Repeated unnamed
  registrations of one file are *not* deduplicated, each gets its own name.
"""

import logging
import os
from pathlib import Path
from urllib.parse import quote
from typing import Dict, Iterator, List, Optional, Tuple, Union

from epubforge.core.exceptions import (
    InvalidMetadataError,
    NameAlreadyUsedError,
    SourceNotFoundError,
)
from epubforge.core.models import AssetClass
from epubforge.core.utils import normalize_name

__all__ = ["ResourceRegistry", "MAX_NAME_LENGTH"]

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 255


def _coerce_class(asset_class: Union[AssetClass, str]) -> AssetClass:
    if isinstance(asset_class, AssetClass):
        return asset_class
    try:
        return AssetClass[str(asset_class).upper()]
    except KeyError:
        raise InvalidMetadataError(f"Unknown asset class: {asset_class}", identifier=str(asset_class),
                                   operation="register") from None


class ResourceRegistry:
    """Per-class mapping of internal names to source locations."""

    def __init__(self) -> None:
        self._maps: Dict[AssetClass, Dict[str, str]] = {cls: {} for cls in AssetClass}
        # Highest synthesized number per class; synthesized names never reuse a lower one.
        self._counters: Dict[AssetClass, int] = {cls: 0 for cls in AssetClass}

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def register(self, asset_class: Union[AssetClass, str], source: Union[str, Path],
                 explicit_name: Optional[str] = None) -> str:
        """Add *source* to *asset_class* and return its text-relative path."""
        cls = _coerce_class(asset_class)
        return self.href(cls, self.add(cls, source, explicit_name))

    def add(self, asset_class: Union[AssetClass, str], source: Union[str, Path],
            explicit_name: Optional[str] = None) -> str:
        """Add *source* to *asset_class* and return its internal name.

        Raises
        ------
        SourceNotFoundError
            If *source* is not an existing file. Nothing is registered.
        NameAlreadyUsedError
            If *explicit_name* belongs to a different source.
        """
        cls = _coerce_class(asset_class)
        source_str = str(source)
        if not source_str or not os.path.isfile(source_str):
            logger.warning("Register %s: source not found %s", cls.prefix, source_str)
            raise SourceNotFoundError("Source file does not exist", identifier=source_str,
                                      operation=f"add_{cls.prefix}")

        mapping = self._maps[cls]
        if explicit_name is not None and normalize_name(explicit_name):
            name = normalize_name(explicit_name)
            existing = mapping.get(name)
            if existing is not None:
                if os.path.abspath(existing) == os.path.abspath(source_str):
                    return name
                logger.warning("Register %s: name %s already used by %s", cls.prefix, name, existing)
                raise NameAlreadyUsedError(f"Name already used by {existing}", identifier=name,
                                           operation=f"add_{cls.prefix}")
        else:
            name = self._derive_name(cls, source_str)

        mapping[name] = source_str
        logger.debug("Registered %s %s -> %s", cls.prefix, name, source_str)
        return name

    def remove(self, asset_class: Union[AssetClass, str], name: str) -> Optional[str]:
        """Remove *name* from *asset_class*; return its source or ``None`` if absent."""
        cls = _coerce_class(asset_class)
        source = self._maps[cls].pop(name, None)
        if source is not None:
            logger.debug("Removed %s %s", cls.prefix, name)
        return source

    def restore(self, asset_class: Union[AssetClass, str], name: str, source: str) -> None:
        """Re-insert an entry previously returned by :meth:`remove` without renaming."""
        self._maps[_coerce_class(asset_class)][name] = source

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    @staticmethod
    def href(asset_class: Union[AssetClass, str], name: str) -> str:
        """Return the percent-encoded path of *name* as referenced from a section document."""
        return f"../{_coerce_class(asset_class).folder}/{quote(name)}"

    @staticmethod
    def package_href(asset_class: Union[AssetClass, str], name: str) -> str:
        """Return the percent-encoded path of *name* relative to the content root (manifest form)."""
        return f"{_coerce_class(asset_class).folder}/{quote(name)}"

    def contains(self, asset_class: Union[AssetClass, str], name: str) -> bool:
        return name in self._maps[_coerce_class(asset_class)]

    def source_of(self, asset_class: Union[AssetClass, str], name: str) -> Optional[str]:
        return self._maps[_coerce_class(asset_class)].get(name)

    def names(self, asset_class: Union[AssetClass, str]) -> List[str]:
        return list(self._maps[_coerce_class(asset_class)])

    def count(self, asset_class: Union[AssetClass, str]) -> int:
        return len(self._maps[_coerce_class(asset_class)])

    def items(self) -> Iterator[Tuple[AssetClass, str, str]]:
        """Yield ``(asset_class, name, source)`` for every entry, class by class."""
        for cls in AssetClass:
            for name, source in self._maps[cls].items():
                yield cls, name, source

    def __len__(self) -> int:
        return sum(len(m) for m in self._maps.values())

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _derive_name(self, cls: AssetClass, source: str) -> str:
        mapping = self._maps[cls]
        candidate = os.path.basename(source)
        if candidate and len(candidate) <= MAX_NAME_LENGTH and candidate not in mapping:
            return candidate

        ext = os.path.splitext(source)[1]
        number = max(len(mapping) + 1, self._counters[cls] + 1)
        while f"{cls.prefix}_{number}{ext}" in mapping:
            number += 1
        self._counters[cls] = number
        return f"{cls.prefix}_{number}{ext}"

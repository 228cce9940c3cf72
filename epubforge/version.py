# -*- coding: utf-8 -*-
"""Package version detection.

``get_version()`` is used for the generator metadata written into package
documents.
"""

from __future__ import annotations

from importlib import metadata
from typing import Optional

_CACHED_VERSION: Optional[str] = None


def get_version() -> str:
    """Return the installed distribution version, or ``"dev"`` for a checkout."""
    global _CACHED_VERSION
    if _CACHED_VERSION:
        return _CACHED_VERSION

    try:
        _CACHED_VERSION = metadata.version("epubforge")
    except metadata.PackageNotFoundError:
        _CACHED_VERSION = "dev"
    return _CACHED_VERSION

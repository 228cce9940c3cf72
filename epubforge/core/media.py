from __future__ import annotations

"""Media type lookup from file extensions.

Wraps :mod:`mimetypes` with the handful of EPUB-relevant types that platform
tables often get wrong or miss (fonts, ``.xhtml``, ``.ncx``).
"""

import mimetypes
from pathlib import Path
from typing import Optional, Union

__all__ = ["guess_media_type", "media_type_or_octet_stream", "is_image"]

OCTET_STREAM = "application/octet-stream"

_EPUB_TYPES = {
    ".xhtml": "application/xhtml+xml",
    ".html": "application/xhtml+xml",
    ".ncx": "application/x-dtbncx+xml",
    ".opf": "application/oebps-package+xml",
    ".css": "text/css",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".webp": "image/webp",
    ".otf": "font/otf",
    ".ttf": "font/ttf",
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".mp3": "audio/mpeg",
    ".m4a": "audio/mp4",
    ".ogg": "audio/ogg",
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".js": "application/javascript",
    ".smil": "application/smil+xml",
}


def guess_media_type(path: Union[str, Path]) -> Optional[str]:
    """Return the media type for *path*'s extension, or ``None`` when unknown."""
    suffix = Path(str(path)).suffix.lower()
    if not suffix:
        return None
    if suffix in _EPUB_TYPES:
        return _EPUB_TYPES[suffix]
    mime, _ = mimetypes.guess_type(f"dummy{suffix}")
    return mime


def media_type_or_octet_stream(path: Union[str, Path]) -> str:
    return guess_media_type(path) or OCTET_STREAM


def is_image(path: Union[str, Path]) -> bool:
    mime = guess_media_type(path)
    return bool(mime) and mime.startswith("image/")
